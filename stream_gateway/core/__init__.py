"""
Core relay orchestration: dispatcher, health monitor and connection managers.
"""
