"""Reporting for configuration exports and imports."""

from connector_bridge.reporting.report import TransferReport

__all__ = ["TransferReport"]
