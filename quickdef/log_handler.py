import logging

from . import events


DEBUG_FALSE_LEVEL = logging.WARNING
DEBUG_TRUE_LEVEL = logging.INFO

logger = logging.getLogger('quickdef')
handler = None


def install(level=False):
    """Install our handler on the package logger.

    `level` follows the `debug` setting: `False` only shows warnings and
    errors, `True` means 'info', strings are taken as level names.
    """
    global handler
    if handler:
        logger.removeHandler(handler)

    if level is False:
        level = DEBUG_FALSE_LEVEL
        formatter = TaskNumberFormatter(
            fmt="quickdef: {LEVELNAME}{message}",
            style='{')
    else:
        if level is True:
            level = DEBUG_TRUE_LEVEL
        else:
            level = logging.getLevelName(level.upper())

        formatter = TaskNumberFormatter(
            fmt="quickdef:{thread_info} {LOC:<22} {LEVELNAME}{message}",
            style='{')

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.info(
        'Logging installed; log level {}'.format(logging.getLevelName(level))
    )


def uninstall():
    global handler
    if handler:
        logger.removeHandler(handler)
        handler = None


@events.on(events.SETTINGS_CHANGED)
def on_settings_changed(settings, **kwargs):
    if handler and settings.has_changed('debug'):
        install(settings.get('debug', False))


class TaskNumberFormatter(logging.Formatter):
    def format(self, record):
        thread_name = record.threadName or ''
        if thread_name.startswith('LintTask|'):
            _, task_number, *_ = thread_name.split('|')
            record.thread_info = ' #{}'.format(task_number)
        else:
            record.thread_info = ''

        record.LOC = '{}:{}:'.format(record.module, record.lineno)

        levelno = record.levelno
        if levelno > logging.INFO:
            record.LEVELNAME = record.levelname + ': '
        else:
            record.LEVELNAME = ''

        return super().format(record)
