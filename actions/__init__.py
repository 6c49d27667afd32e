"""
actions/ — Concrete actions fired by the scheduler

Usage:
    from actions import actions_from_settings

    action_map = actions_from_settings(settings)
    scheduler.start(specs, action_map.__getitem__)
"""

from actions.http import HttpGetAction, actions_from_settings

__all__ = ["HttpGetAction", "actions_from_settings"]
