"""Audit domain - best-effort business event trail"""
