class CountdownTimer:
    """
    One-second countdown for the quiz time limit.

    Holds only the counting logic. Something else (see QuizService) decides
    when a tick happens; the timer just decrements when asked.
    """

    def __init__(self):
        self.time_remaining = 0
        self.is_running = False

    def start(self, total_seconds: int):
        if total_seconds < 0:
            raise ValueError("total_seconds must be non-negative")
        self.time_remaining = int(total_seconds)
        self.is_running = True

    def tick(self) -> bool:
        """Decrement by one second. Returns True if this tick reached zero."""
        if not self.is_running or self.time_remaining <= 0:
            return False
        self.time_remaining -= 1
        return self.time_remaining == 0

    def pause(self):
        self.is_running = False

    def resume(self):
        if self.time_remaining > 0:
            self.is_running = True

    def toggle(self) -> bool:
        if self.is_running:
            self.pause()
        else:
            self.resume()
        return self.is_running

    def stop(self):
        self.is_running = False

    def clear(self):
        self.time_remaining = 0
        self.is_running = False

    @property
    def formatted(self) -> str:
        return format_time(self.time_remaining)


def format_time(seconds: int) -> str:
    """Format seconds as m:ss (65 -> "1:05")"""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes}:{secs:02d}"
