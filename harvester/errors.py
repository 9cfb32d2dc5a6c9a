"""
Error taxonomy for the scraping engine.

Validation problems surface as pydantic ``ValidationError`` while building a
``ScrapeRequest``; everything below is raised inside work functions and ends up
as a job's ``error`` string.
"""


class ScraperError(Exception):
    """Base class for scraper failures."""


class CampaignNotFoundError(ScraperError):
    def __init__(self, campaign_id: str):
        super().__init__(f"Campaign with ID {campaign_id} not found")
        self.campaign_id = campaign_id


class AutomationError(ScraperError):
    """Navigation, selector or evaluation failure inside a browser session."""


class FilterApplicationError(AutomationError):
    def __init__(self, subcategory: str, attempts: int, last_error: Exception = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f'Failed to apply subcategory filter "{subcategory}" after {attempts} attempts{detail}'
        )
        self.subcategory = subcategory
        self.attempts = attempts


class AggregationTimeoutError(ScraperError):
    def __init__(self, parent_job_id: str, timeout_seconds: float):
        super().__init__(
            f"Timed out after {timeout_seconds:.0f}s waiting for child jobs of {parent_job_id}"
        )
        self.parent_job_id = parent_job_id


class ChildJobsFailedError(ScraperError):
    def __init__(self, message: str = "All child jobs failed"):
        super().__init__(message)


class ChildJobMissingError(ScraperError):
    def __init__(self, child_job_id: str):
        super().__init__(f"Child job {child_job_id} disappeared before aggregation")
        self.child_job_id = child_job_id


class StorageError(ScraperError):
    """Durable store unavailable or unreadable."""
