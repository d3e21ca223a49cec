"""Rule editor command line — check, normalise and submit Sigma rule files.

Runs the same parser, gate and serializer the visual editor uses, so a rule
that passes here is one the form would accept.

Usage:
    python -m sigma_editor.main check rules/my_rule.yml
    python -m sigma_editor.main format rules/my_rule.yml
    python -m sigma_editor.main submit rules/my_rule.yml --bootstrap-servers kafka-1:29092
    python -m sigma_editor.main submit rules/my_rule.yml --dry-run
"""

import argparse
import sys

from sigma_editor.gate import SubmissionGate
from sigma_editor.rules.errors import ParseError, SerializationError, SubmissionFailure
from sigma_editor.rules.loader import load_catalog, load_rule
from sigma_editor.rules.serializer import serialize_text
from sigma_editor.rules.validators import FieldValidators
from sigma_editor.session import RuleEditorSession
from sigma_editor.store import InMemoryRuleStore, KafkaRuleStore


def _build_gate(catalog_path):
    catalog = load_catalog(catalog_path)
    return SubmissionGate(FieldValidators.from_catalog(catalog))


def _load(path):
    try:
        return load_rule(path)
    except ParseError as e:
        print(f"{path}:{e.line}: {e.reason}", file=sys.stderr)
        return None


def cmd_check(args) -> int:
    record = _load(args.rule)
    if record is None:
        return 1
    report = _build_gate(args.catalog).evaluate(record)
    if report.submittable:
        print(f"OK    {args.rule}  title={record.name!r}  "
              f"selections={len(record.selections)}")
        return 0
    for failure in report.failures:
        kind = "structure" if failure.structural else "field"
        print(f"FAIL  {args.rule}  {kind}={failure.field:<28s} {failure.message}")
    return 1


def cmd_format(args) -> int:
    record = _load(args.rule)
    if record is None:
        return 1
    try:
        text = serialize_text(record)
    except SerializationError as e:
        print(f"{args.rule}: {e}", file=sys.stderr)
        return 1
    if args.write:
        with open(args.rule, "w") as f:
            f.write(text)
        print(f"Rewrote {args.rule}")
    else:
        sys.stdout.write(text)
    return 0


def cmd_submit(args) -> int:
    record = _load(args.rule)
    if record is None:
        return 1

    if args.dry_run:
        store = InMemoryRuleStore()
    else:
        store = KafkaRuleStore(args.bootstrap_servers, args.topic)
        try:
            created = store.ensure_topic(args.partitions, args.replication_factor)
        except SubmissionFailure as e:
            print(e.reason, file=sys.stderr)
            return 1
        print(f"{'Created' if created else 'Using existing'} topic '{args.topic}'")

    session = RuleEditorSession(
        _build_gate(args.catalog), record,
        notify=lambda message: print(message, file=sys.stderr),
    )
    if not session.submit(store):
        for field_name, messages in session.field_errors.items():
            for message in messages:
                print(f"  {field_name:<28s} {message}", file=sys.stderr)
        return 1

    print(f"Submitted {args.rule}  id={session.record.id}  "
          f"{'dry-run' if args.dry_run else 'topic=' + args.topic}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sigma rule editor tools")
    parser.add_argument("--catalog", default=None,
                        help="Catalog YAML with log types, levels, statuses, tag prefix")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Parse and validate a rule file")
    check.add_argument("rule")
    check.set_defaults(func=cmd_check)

    fmt = sub.add_parser("format", help="Print a rule in canonical form")
    fmt.add_argument("rule")
    fmt.add_argument("--write", action="store_true", default=False,
                     help="Rewrite the file in place")
    fmt.set_defaults(func=cmd_format)

    submit = sub.add_parser("submit", help="Validate and publish a rule")
    submit.add_argument("rule")
    submit.add_argument("--bootstrap-servers", default="localhost:9092")
    submit.add_argument("--topic", default="custom-rules")
    submit.add_argument("--partitions", type=int, default=1,
                        help="Partitions when the topic has to be created")
    submit.add_argument("--replication-factor", type=int, default=1)
    submit.add_argument("--dry-run", action="store_true", default=False,
                        help="Use an in-memory store instead of Kafka")
    submit.set_defaults(func=cmd_submit)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
