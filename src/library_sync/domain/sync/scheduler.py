"""
Outer attempt loop of a sync session.

One attempt runs data, then files, then full-text. A file or full-text
pass that needs a fresh data sync starts the next attempt with only the
libraries concerned; running out of attempts ends the session.
"""

from typing import Callable

from loguru import logger

from .exceptions import TooManyAttemptsError
from .models import PhaseOutcome, SyncSession
from .phases import PhaseContext, run_data_phase, run_file_phase, run_fulltext_phase


class RetryScheduler:
    """Drives the phases for a session until nothing needs resyncing.

    Args:
        ctx: Shared phase context
        report: Receives every phase outcome so its errors can be routed
    """

    def __init__(self, ctx: PhaseContext, report: Callable[[PhaseOutcome], None]):
        self._ctx = ctx
        self._report = report

    async def run(self, session: SyncSession) -> bool:
        """Run attempts over ``session.libraries_to_sync``.

        Returns:
            False if the gate was stopped and the session cut short

        Raises:
            TooManyAttemptsError: If another attempt is needed past the limit
        """
        max_attempts = self._ctx.config.max_attempts
        all_libraries = list(session.libraries_to_sync)
        session.successful_libraries = set(all_libraries)
        libraries = all_libraries

        while libraries:
            if session.attempt > max_attempts:
                raise TooManyAttemptsError()
            logger.info(f"Sync attempt {session.attempt}: libraries {libraries}")

            data = await run_data_phase(libraries, self._ctx)
            self._report(data)
            # Remove failed libraries from the successful set
            for library_id in libraries:
                if library_id not in data.libraries:
                    session.successful_libraries.discard(library_id)
            if data.stopped:
                return False

            # Run file sync on all libraries that passed the last data sync
            files = await run_file_phase(data.libraries, self._ctx)
            self._report(files)
            if files.stopped:
                return False
            if files.libraries:
                session.attempt += 1
                libraries = files.libraries
                continue

            # Run full-text sync on all libraries that haven't failed a data sync
            successful = [
                library_id for library_id in all_libraries
                if library_id in session.successful_libraries
            ]
            fulltext = await run_fulltext_phase(successful, self._ctx)
            self._report(fulltext)
            if fulltext.stopped:
                return False
            if fulltext.libraries:
                session.attempt += 1
                libraries = fulltext.libraries
                continue
            break
        return True
