"""
vault-timeline: task text codec and temporal layout engine for markdown vaults.

Tasks are parsed from checkbox lines in any of five inline field formats,
nested into parent/sub-task trees and laid out on a day timeline next to
calendar events.
"""

__version__ = "0.1.0"
