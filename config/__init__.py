"""
Configuration package for the sales report tool
"""
