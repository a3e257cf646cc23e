"""SafeRide Services Package"""
