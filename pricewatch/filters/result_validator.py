# pricewatch/filters/result_validator.py

"""Search result validation: drop invalid results before caching."""

import logging
import math

from pricewatch.models.search_result import SearchResult

logger = logging.getLogger("pricewatch.filters")


class ResultValidator:
    """Validate search results and drop those with missing essential fields."""

    @staticmethod
    def validate(
        results: list[SearchResult],
    ) -> tuple[list[SearchResult], int]:
        """Drop results with blank names or non-positive/non-finite prices.

        Returns the valid results and the count of dropped items.
        """
        valid: list[SearchResult] = []
        dropped = 0

        for result in results:
            if not result.name.strip():
                logger.debug(
                    "Dropped result with empty name "
                    "(marketplace=%s, url=%s)",
                    result.marketplace,
                    result.url,
                )
                dropped += 1
                continue
            if not math.isfinite(result.price) or result.price <= 0:
                logger.debug(
                    "Dropped result with invalid price %r "
                    "(name=%s, marketplace=%s)",
                    result.price,
                    result.name,
                    result.marketplace,
                )
                dropped += 1
                continue
            valid.append(result)

        if dropped:
            logger.info(
                "Validation dropped %d invalid results", dropped,
            )

        return valid, dropped
