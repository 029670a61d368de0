"""Back-office: bookings, customers, coupons, credits, refunds and settings"""
