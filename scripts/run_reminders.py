"""Run one reminder sweep and exit (for cron instead of the in-process scheduler)."""
from survey360.core.config import settings
from survey360.core.email import EmailSender
from survey360.core.logger import configure_logging
from survey360.core.reminders import ReminderScheduler
from survey360.db.session import SessionLocal


def main():
    configure_logging()
    scheduler = ReminderScheduler(SessionLocal, EmailSender.from_settings(), settings.REMINDER_INTERVAL_HOURS)
    summary = scheduler.run_once()
    if summary is None:
        raise SystemExit(1)
    print(summary.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
