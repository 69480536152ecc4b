"""Benchmark workloads: one transaction per ``run`` call.

A workload's lifecycle is ``init(session)``, any number of ``run(session)``
calls, then ``end(session)``. Everything a call needs to reach the ledger
travels in the ``BenchmarkSession``; the workload itself only keeps what it
owns, such as its stream cursor.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ConfigError, SourceExhaustedError
from ..ledger.client import ClientContext, LedgerClient
from ..models.latency import LatencySample
from ..models.transaction import TransactionResult
from ..schemas import SOURCES, RecordSchema
from ..stream.mapper import RecordMapper
from ..stream.tokenizer import StreamTokenizer
from .builders import get_transaction_builder
from .sink import LatencySink

logger = logging.getLogger(__name__)

INSERT_TIMEOUT_MS = 4000
QUERY_TIMEOUT_MS = 1000
QUERY_ID_MIN = 1
QUERY_ID_MAX = 10000


@dataclass
class BenchmarkSession:
    """Ledger handles for one worker."""

    client: LedgerClient
    context: ClientContext
    sink: LatencySink
    contract_name: str = "medrecords"
    contract_version: str = "v0"


class Workload(ABC):
    """Base class for benchmark workloads."""

    info: str = ""

    def init(self, session: BenchmarkSession) -> None:
        # Fails fast on a ledger flavor with no builder.
        get_transaction_builder(session.client.get_type())
        logger.info(f"Workload ready: {self.info} ({session.client.get_type()})")

    @abstractmethod
    def run(self, session: BenchmarkSession) -> list[TransactionResult]:
        """Submit one transaction, record its latency and return the results."""
        pass

    def end(self, session: BenchmarkSession) -> None:
        logger.info(f"Workload finished: {self.info}")

    def record_latency(self, session: BenchmarkSession, results: list[TransactionResult]) -> list[LatencySample]:
        samples = []
        for result in results:
            sample = LatencySample(time_create=result.time_create, time_final=result.time_final)
            session.sink.append(sample)
            samples.append(sample)
        return samples


class InsertWorkload(Workload):
    """Read one source line per run and insert it as a record."""

    def __init__(
        self,
        tokenizer: StreamTokenizer,
        mapper: RecordMapper,
        timeout_ms: int = INSERT_TIMEOUT_MS,
    ):
        self.tokenizer = tokenizer
        self.mapper = mapper
        self.timeout_ms = timeout_ms
        self.info = f"Reading {mapper.record_type} records from {tokenizer.path.name}"

    @classmethod
    def from_source(
        cls,
        record_type: str,
        path: Path,
        *,
        start_offset: Optional[int] = None,
        end_offset: Optional[int] = None,
        separator: str = ",",
        schemas: Optional[dict[str, RecordSchema]] = None,
        timeout_ms: int = INSERT_TIMEOUT_MS,
    ) -> "InsertWorkload":
        """Build an insert workload, skipping the record type's known header.

        Raises:
            ConfigError: If no start offset is given and the record type has
                no known header length
        """
        if start_offset is None:
            source = SOURCES.get(record_type)
            if source is None:
                raise ConfigError(f"No known header length for {record_type}; pass start_offset")
            start_offset = source.header_bytes
        return cls(
            StreamTokenizer(path, start_offset=start_offset, end_offset=end_offset),
            RecordMapper(record_type, separator=separator, schemas=schemas),
            timeout_ms=timeout_ms,
        )

    @property
    def schema(self) -> RecordSchema:
        return self.mapper.schema

    def run(self, session: BenchmarkSession) -> list[TransactionResult]:
        builder = get_transaction_builder(session.client.get_type())

        line = self.tokenizer.next_line()
        if line is None:
            raise SourceExhaustedError(f"No more records in {self.tokenizer.path}")

        record = self.mapper.map_line(line)
        payloads = builder.build_insert_transaction(self.schema.insert_function, record)
        results = session.client.invoke(
            session.context,
            session.contract_name,
            session.contract_version,
            payloads,
            self.timeout_ms,
        )
        self.record_latency(session, results)
        return results


class QueryWorkload(Workload):
    """Look up one uniformly random patient id per run."""

    def __init__(
        self,
        id_min: int = QUERY_ID_MIN,
        id_max: int = QUERY_ID_MAX,
        timeout_ms: int = QUERY_TIMEOUT_MS,
        function: str = "queryPatientById",
        rng: Optional[random.Random] = None,
    ):
        if id_min > id_max:
            raise ConfigError(f"Query id range is empty: [{id_min}, {id_max}]")
        self.id_min = id_min
        self.id_max = id_max
        self.timeout_ms = timeout_ms
        self.function = function
        self.rng = rng or random.Random()
        self.info = "Querying information about a patient"

    def next_identifier(self) -> str:
        return str(self.rng.randint(self.id_min, self.id_max))

    def run(self, session: BenchmarkSession) -> list[TransactionResult]:
        builder = get_transaction_builder(session.client.get_type())
        payload = builder.build_query_transaction(self.function, self.next_identifier())
        results = session.client.query(
            session.context,
            session.contract_name,
            session.contract_version,
            payload,
            self.timeout_ms,
        )
        self.record_latency(session, results)
        return results

