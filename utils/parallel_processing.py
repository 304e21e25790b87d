# parallel_processing.py

import concurrent.futures  # For parallel execution of tasks
import logging  # For logging process information and errors
from abc import ABC, abstractmethod  # For defining an abstract base class
from typing import Any, Dict, List, Tuple  # For type hints

from utils.exceptions import SourceLookupError

logger = logging.getLogger(__name__)  # Initialize logger for module


class ParallelProcessor(ABC):
    """
    Abstract base class for running independent per-resource lookups on a bounded worker pool.

    Resources that fail with SourceLookupError are collected instead of aborting the batch;
    any other exception propagates to the caller.
    """

    def __init__(self, resource_ids: List[str], max_workers: int = 3):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1.")

        # Deduplicate while keeping the caller's order
        self.resource_ids = list(dict.fromkeys(resource_ids))
        # External services rate-limit, so keep the pool small
        self.max_workers = max_workers

    @abstractmethod
    def process_resource(self, resource_id: str) -> Any:
        """
        Abstract method for processing a single resource.
        This method must be implemented in derived classes.

        Args:
            resource_id (str): The unique identifier for the resource.

        Returns:
            Any: Result of processing, defined by subclass implementation.
        """
        pass  # Must be implemented by subclass

    def execute(self) -> Tuple[Dict[str, Any], Dict[str, str]]:
        """
        Processes every resource and separates results from recoverable failures.

        Returns:
            Tuple[Dict[str, Any], Dict[str, str]]: Results keyed by resource id, in input order,
            and failure messages keyed by resource id.
        """
        results: Dict[str, Any] = {}
        failures: Dict[str, str] = {}

        if self.max_workers == 1:
            # Sequential path keeps lookups strictly polite and ordered
            for resource_id in self.resource_ids:
                try:
                    results[resource_id] = self.process_resource(resource_id)
                except SourceLookupError as e:
                    logger.error(f"Error processing resource {resource_id}: {e}")
                    failures[resource_id] = str(e)
            return results, failures

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            # Map resource ID to its respective task
            future_to_resource_id = {
                executor.submit(self.process_resource, resource_id): resource_id
                for resource_id in self.resource_ids
            }

            # Handle task completion and log outcomes for each future
            unordered: Dict[str, Any] = {}
            for future in concurrent.futures.as_completed(future_to_resource_id):
                resource_id = future_to_resource_id[future]
                try:
                    unordered[resource_id] = future.result()
                    logger.debug(f"Successfully processed resource {resource_id}")
                except SourceLookupError as e:
                    logger.error(f"Error processing resource {resource_id}: {e}")
                    failures[resource_id] = str(e)

        # Completion order is arbitrary; report results in submission order
        for resource_id in self.resource_ids:
            if resource_id in unordered:
                results[resource_id] = unordered[resource_id]
        return results, failures
