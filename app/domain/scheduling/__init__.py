"""Scheduling domain - opening hours, booking-time rules and room availability"""
