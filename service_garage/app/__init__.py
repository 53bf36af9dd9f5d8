"""
Garage dashboard service application.
"""
