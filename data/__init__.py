"""
Data layer for the sales report tool
Record loading, models and aggregation
"""
