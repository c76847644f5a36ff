"""Protocol-independent helpers"""
