from datetime import date, datetime

START = datetime(2025, 6, 14, 10, 0, 0)
PLAY_DATE = date(2025, 6, 20)


def auth(user):
    return {"X-User-Id": str(user.id)}
