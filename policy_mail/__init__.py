"""
Policy Mail - guided composition of policy violation emails.
"""
