"""Exceptions raised by scenario construction and reporting"""


class ScenarioError(Exception):
    """Base class for scenario errors"""


class ConfigurationError(ScenarioError, ValueError):
    """Invalid scenario configuration"""


class EngineError(ScenarioError):
    """Simulation engine used out of order or fed a malformed trace"""
