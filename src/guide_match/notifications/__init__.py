from guide_match.notifications.fanout import (
    EmailSender,
    LoggingEmailSender,
    MatchNotice,
    NotificationFanout,
)

__all__ = ["EmailSender", "LoggingEmailSender", "MatchNotice", "NotificationFanout"]
