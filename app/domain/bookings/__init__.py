"""Room bookings: public checkout, credit bookings and customer self-service"""
