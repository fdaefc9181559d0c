"""Appointment reminders - finds appointments inside the lead window and notifies customers"""
