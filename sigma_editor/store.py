"""Persistence collaborators for submitted rules.

The editor core never does I/O itself; the session hands a finished
document to one of these and gets back the assigned rule id, or a
SubmissionFailure carrying the reason verbatim.

KafkaRuleStore publishes every create/update to a compacted topic keyed by
rule id, which the detector fleet consumes to load custom rules.  One
request is outstanding at a time and there is no client-side retry: a
failed delivery goes straight back to the analyst.
"""

import json
import uuid
from typing import Protocol

from confluent_kafka import KafkaError, KafkaException, Producer
from confluent_kafka.admin import AdminClient, NewTopic

from sigma_editor.rules.errors import SubmissionFailure


class RuleStore(Protocol):
    def create(self, document: dict) -> str: ...

    def update(self, rule_id: str, document: dict) -> str: ...


class InMemoryRuleStore:
    """Dict-backed store for dry runs."""

    def __init__(self):
        self.documents: dict[str, dict] = {}

    def create(self, document: dict) -> str:
        rule_id = str(uuid.uuid4())
        self.documents[rule_id] = {**document, "id": rule_id}
        return rule_id

    def update(self, rule_id: str, document: dict) -> str:
        if rule_id not in self.documents:
            raise SubmissionFailure(f"Rule not found: {rule_id}")
        self.documents[rule_id] = {**document, "id": rule_id}
        return rule_id

    def get(self, rule_id: str) -> dict | None:
        return self.documents.get(rule_id)


class KafkaRuleStore:
    """Publishes rule documents as JSON, one message per create/update."""

    def __init__(self, bootstrap_servers: str = "localhost:9092",
                 topic: str = "custom-rules", timeout: float = 10.0):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.timeout = timeout
        self._producer = Producer({"bootstrap.servers": bootstrap_servers})

    def create(self, document: dict) -> str:
        # The topic is keyed by id, so the id is minted before the write.
        rule_id = str(uuid.uuid4())
        self._publish("create", rule_id, document)
        return rule_id

    def update(self, rule_id: str, document: dict) -> str:
        self._publish("update", rule_id, document)
        return rule_id

    def ensure_topic(self, partitions: int = 1, replication_factor: int = 1) -> bool:
        """Create the compacted rules topic.  False if it already exists.

        Compaction keeps the latest document per rule id.
        """
        admin = AdminClient({"bootstrap.servers": self.bootstrap_servers})
        futures = admin.create_topics([NewTopic(
            self.topic, num_partitions=partitions,
            replication_factor=replication_factor,
            config={"cleanup.policy": "compact"},
        )])
        try:
            futures[self.topic].result(self.timeout)
        except KafkaException as e:
            if e.args[0].code() == KafkaError.TOPIC_ALREADY_EXISTS:
                return False
            raise SubmissionFailure(f"Cannot create topic '{self.topic}': {e}") from e
        return True

    def _publish(self, op: str, rule_id: str, document: dict) -> None:
        errors = []

        def _on_delivery(err, msg):
            if err is not None:
                errors.append(err)

        payload = {"op": op, "rule": {**document, "id": rule_id}}
        try:
            self._producer.produce(
                self.topic,
                key=rule_id.encode(),
                value=json.dumps(payload).encode("utf-8"),
                on_delivery=_on_delivery,
            )
        except (BufferError, KafkaException) as e:
            raise SubmissionFailure(str(e)) from e

        # flush() returns the number of messages still waiting.
        if self._producer.flush(self.timeout) > 0:
            raise SubmissionFailure(
                f"Timed out after {self.timeout}s waiting for '{self.topic}'"
            )
        if errors:
            raise SubmissionFailure(str(errors[0]))
