"""Reward and progression engine for a learning platform"""
