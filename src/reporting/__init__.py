"""Deployment run reports."""

from reporting.report import DeployReport, PhaseResult

__all__ = ['DeployReport', 'PhaseResult']
