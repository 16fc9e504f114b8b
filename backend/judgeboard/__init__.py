"""Judgeboard: cached LeetCode statistics served as a ranked dashboard feed."""
