from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

_originals = {}

# -- paging bounds

# The maximum value a client may pass as ?limit=...
# Routes can still pass their own ceiling to compile_options().
QUERYHANDLER_MAX_LIMIT = getattr(settings, "QUERYHANDLER_MAX_LIMIT", 100)

# The maximum value a client may pass as ?skip=...
# This value can be 'math.inf' to allow endless paging.
QUERYHANDLER_MAX_SKIP = getattr(settings, "QUERYHANDLER_MAX_SKIP", 100)

# -- output rendering

# Template to render errors for text/html clients.
QUERYHANDLER_ERROR_VIEW = getattr(settings, "QUERYHANDLER_ERROR_VIEW", "errors")

# Template to render empty results for text/html clients.
QUERYHANDLER_NOT_FOUND_VIEW = getattr(settings, "QUERYHANDLER_NOT_FOUND_VIEW", "errors/404")

# Extra output formats, as {"token": "dotted.path.FormatHandler"}.
QUERYHANDLER_EXTRA_OUTPUT_FORMATS = getattr(settings, "QUERYHANDLER_EXTRA_OUTPUT_FORMATS", {})

# -- logging

# The logger name used when a route doesn't configure its own logger.
QUERYHANDLER_LOGGER = getattr(settings, "QUERYHANDLER_LOGGER", "queryhandler")


@receiver(setting_changed)
def _on_settings_change(setting, value, enter, **kwargs):
    if not setting.startswith("QUERYHANDLER_"):
        return

    conf_module = globals()
    if value is None and not enter:
        # override_settings().disable() returns what the django settings module had.
        # Revert to our defaults here instead.
        value = _originals.get(setting)
    else:
        # Track defaults of this file for reverting to them
        _originals.setdefault(setting, conf_module[setting])

    conf_module[setting] = value
