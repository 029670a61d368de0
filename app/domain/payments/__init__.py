"""Payments domain - Asaas charges and payment records"""
