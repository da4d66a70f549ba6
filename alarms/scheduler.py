"""Background scheduler driving the autoscale engine at a fixed interval."""
import logging
import threading

import schedule

logger = logging.getLogger("autoscale.scheduler")


class AutoScaleScheduler:
    def __init__(self, engine, interval_seconds=30, poll_seconds=1.0):
        self.engine = engine
        self.interval = interval_seconds
        self.poll = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread = None
        self._callbacks = []
        self._consecutive_failures = 0
        self.ticks = 0

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def on_tick(self, callback):
        """Register callback called with the results of each tick."""
        self._callbacks.append(callback)

    def start(self):
        """Start ticking on a daemon thread; the first tick runs immediately."""
        if self.running:
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self.tick)

        self._thread = threading.Thread(target=self._run_loop, name="autoscale", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (every {self.interval}s)")

    def stop(self, timeout=5):
        """Ask the loop to stop between ticks and wait for it."""
        self._stop.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Scheduler stopped")

    def join(self):
        """Block until the loop stops."""
        while self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=self.poll)

    def _run_loop(self):
        self.tick()
        while not self._stop.wait(self.poll):
            self._scheduler.run_pending()

    def tick(self):
        if self._stop.is_set():
            return None
        self.ticks += 1
        try:
            results = self.engine.run_once()
            self._consecutive_failures = 0
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Tick failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical("5+ consecutive tick failures!")
            return None
        for cb in self._callbacks:
            try:
                cb(results)
            except Exception as e:
                logger.warning(f"Tick callback error: {e}")
        return results
