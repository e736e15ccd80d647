"""Trade journal intelligence engine.

Turns a trader's journal into performance metrics, behavioural pattern
alerts, ranked insights, outcome predictions and position sizes.
"""

__version__ = "0.1.0"
