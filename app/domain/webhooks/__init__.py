"""Inbound payment gateway notifications"""
