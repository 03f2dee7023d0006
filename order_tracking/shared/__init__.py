"""
Общие модели и события.
"""
