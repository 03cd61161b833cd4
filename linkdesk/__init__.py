"""
LinkDesk signaling relay.
"""
