"""Recurring schedules - frequency calculation, due-occurrence processing and lifecycle"""
