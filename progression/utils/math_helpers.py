"""Numeric helpers"""
import math


def round_half_up(value: float) -> int:
    """Round to nearest integer with .5 going towards +infinity"""
    return math.floor(value + 0.5)
