"""
DeGov background worker: DAO registry sync and vote tracking.
"""
