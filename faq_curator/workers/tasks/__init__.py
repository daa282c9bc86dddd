"""ARQ task registration.

All ARQ task functions are imported here for WorkerSettings.functions.
"""

from faq_curator.workers.tasks.faq import generate_faqs

__all__ = ["generate_faqs"]
