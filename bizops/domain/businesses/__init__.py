"""Businesses - tenant enumeration used by the background schedulers"""
