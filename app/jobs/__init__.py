"""
Jobs package - background scheduling
"""
from jobs.scheduler import JobScheduler

__all__ = ['JobScheduler']
