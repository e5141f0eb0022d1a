import sys
from pathlib import Path
import pytest

# Ensure project root is on sys.path so tests can import the `jbbly` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from jbbly.phrases import DEFAULT_POOL  # noqa: E402


@pytest.fixture(autouse=True)
def reset_shared_state():
	# rate limiter and caches are process-wide; keep tests independent
	from jbbly.cache import get_cache
	get_cache().clear()
	try:
		import jbbly.main as jbbly_main
		jbbly_main._RATE_LIMIT_STORE.clear()
	except Exception:
		pass
	yield


class FakeClock:
	def __init__(self, t: int = 0):
		self.t = t

	def now(self) -> int:
		return self.t


class FakeHandle:
	def __init__(self):
		self.cancelled = False

	def cancel(self):
		self.cancelled = True


class FakeScheduler:
	"""Timers driven by advance(); moves the shared FakeClock as they fire."""

	def __init__(self, clock: FakeClock):
		self.clock = clock
		self.timers = []  # [due_at, fn, handle, interval or None]

	def after(self, delay_ms, fn):
		h = FakeHandle()
		self.timers.append([self.clock.t + delay_ms, fn, h, None])
		return h

	def every(self, interval_ms, fn):
		h = FakeHandle()
		self.timers.append([self.clock.t + interval_ms, fn, h, interval_ms])
		return h

	def pending(self, periodic=None):
		live = [t for t in self.timers if not t[2].cancelled]
		if periodic is None:
			return live
		return [t for t in live if (t[3] is not None) == periodic]

	def advance(self, ms):
		target = self.clock.t + ms
		while True:
			due = [t for t in self.pending() if t[0] <= target]
			if not due:
				break
			timer = min(due, key=lambda t: t[0])
			self.clock.t = timer[0]
			if timer[3] is None:
				self.timers.remove(timer)
			else:
				timer[0] += timer[3]
			timer[1]()
		self.clock.t = target


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def scheduler(clock):
	return FakeScheduler(clock)


@pytest.fixture
def pool5():
	return DEFAULT_POOL[:5]
