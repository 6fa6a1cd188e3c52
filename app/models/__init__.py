from app.models.order import Order
from app.models.client import Client
from app.models.counter import Counter
from app.models.daily_visit import DailyVisit
