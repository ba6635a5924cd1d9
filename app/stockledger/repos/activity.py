from app.stockledger.db.models import ActivityLog


class ActivityLogRepository:
    def __init__(self, db):
        self.db = db

    def create(self, event: ActivityLog) -> ActivityLog:
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event
