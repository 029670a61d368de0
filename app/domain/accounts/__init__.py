"""Accounts domain - customer registration, login and guest resolution"""
