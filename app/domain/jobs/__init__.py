"""Maintenance jobs run by the arq worker and the cron endpoints"""
