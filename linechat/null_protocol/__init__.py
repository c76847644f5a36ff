"""Null-terminated text protocol and its client"""
