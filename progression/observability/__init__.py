"""Observability: Prometheus metrics"""
