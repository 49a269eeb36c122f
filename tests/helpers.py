"""Test doubles and builders shared by the test modules."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from vocadrill.models import MemoryState, PracticeItem

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

UNIT_CSV = """id,word,translation,translation_uz,definition,category,example,audio_url
w01,mosque,мечеть,masjid,a building for Muslim worship,places,We walked to the mosque on Friday.,
w02,school,школа,maktab,a place where children learn,places,My school is near the park.,
w03,market,рынок,bozor,a place where people buy and sell goods,places,She buys bread at the market.,
w04,library,библиотека,kutubxona,a place where books are kept,places,The library opens at nine.,
w05,apple,яблоко,olma,a round fruit,food,I eat an apple every day.,https://cdn.example.com/apple.mp3
w06,bread,хлеб,non,food made from flour,food,Fresh bread smells wonderful.,
w07,water,вода,suv,a clear liquid,food,Please give me some water.,
w08,rice,рис,guruch,small white grains,food,We had rice for dinner.,
w09,brother,брат,aka,a male sibling,family,My brother plays football.,
w10,sister,сестра,opa,a female sibling,family,Her sister lives in Tashkent.,
w11,mother,мать,ona,a female parent,family,My mother cooks plov.,
w12,father,отец,ota,a male parent,family,His father is a teacher.,
"""


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePipeline:
    def __init__(self, client: "FakeRedis"):
        self.client = client
        self.commands: List[tuple] = []

    def get(self, key):
        return self.client.get(key)

    def multi(self):
        pass

    def set(self, key, value, ex=None):
        self.commands.append((key, value))

    def execute(self):
        for key, value in self.commands:
            self.client.set(key, value)
        return [True] * len(self.commands)


class FakeRedis:
    """The subset of redis.Redis the stores use, backed by a dict."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.expiry: Dict[str, Optional[timedelta]] = {}

    def get(self, key):
        return self.data.get(key)

    def mget(self, keys):
        return [self.data.get(k) for k in keys]

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex
        return True

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    def transaction(self, func, *watches, value_from_callable=False):
        pipe = FakePipeline(self)
        value = func(pipe)
        result = pipe.execute()
        return value if value_from_callable else result


def reviewed_state(
    stability: float = 5.0,
    difficulty: float = 5.0,
    days_ago: float = 5.0,
    due_in_days: float = 0.0,
    now: datetime = NOW,
) -> MemoryState:
    last = now - timedelta(days=days_ago)
    return MemoryState(
        stability=stability,
        difficulty=difficulty,
        due_date=max(last, now + timedelta(days=due_in_days)),
        repetition_count=3,
        lapse_count=0,
        last_reviewed=last,
    )


def make_item(item_id: str, word: str, translation: str, category: str = "", **kwargs) -> PracticeItem:
    return PracticeItem(
        id=item_id,
        word=word,
        translations={"ru": translation},
        category=category,
        **kwargs,
    )
