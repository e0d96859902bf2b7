"""
ServiceHub marketplace backend

Companies post service requests, providers send proposals, accepted proposals
become milestone-based projects paid through escrow.
"""
from servicehub.app import create_app

__all__ = ['create_app']
