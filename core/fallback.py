"""Ordered fallback chains: try strategies until one produces a usable value."""

import logging

logger = logging.getLogger(__name__)


def first_success(strategies, accept=bool, on_failure=None, default=None):
    """Run ``strategies`` in order and return the first accepted result.

    Args:
        strategies: Sequence of ``(name, callable)`` pairs. Each callable takes no
                    arguments.
        accept: Predicate applied to a strategy's return value. The default
                accepts any truthy value, so an empty list moves on to the next
                strategy.
        on_failure: Optional ``callback(name, reason)`` invoked for every strategy
                    that raised or returned an unaccepted value. ``reason`` is the
                    exception, or None for a rejected value.
        default: Returned when no strategy is accepted.

    Returns:
        ``(name, value)`` of the winning strategy, or ``(None, default)``.
    """
    for name, strategy in strategies:
        try:
            value = strategy()
        except Exception as e:
            logger.warning("Strategy %s failed: %s", name, e)
            if on_failure:
                on_failure(name, e)
            continue

        if accept(value):
            return name, value

        logger.debug("Strategy %s produced no usable result", name)
        if on_failure:
            on_failure(name, None)

    return None, default
