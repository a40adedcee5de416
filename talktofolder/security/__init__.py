"""Authentication and rate limiting"""
