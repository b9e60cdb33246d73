import sys
import os
import json
import argparse
from datetime import datetime, timezone

# Add parent directory to path to import config
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kombu import Connection, Producer
from config import config
from constants import EventTypes
from services.consumer import build_task_queue


def main():
    parser = argparse.ArgumentParser(description="Publish a task lifecycle event the way the task service does.")
    parser.add_argument("event_type", choices=EventTypes.ALL)
    parser.add_argument("--actor", required=True, help="userId of the user performing the action")
    parser.add_argument("--task-id", default="0123456789abcdef01234567")
    parser.add_argument("--title", default="Sample task")
    parser.add_argument("--status", default="todo")
    parser.add_argument("--assignee")
    parser.add_argument("--creator")
    parser.add_argument("--watcher", action="append", default=[])
    parser.add_argument("--mention", action="append", default=[])
    args = parser.parse_args()

    task = {
        "_id": args.task_id,
        "title": args.title,
        "status": args.status,
        "assignedTo": {"userId": args.assignee} if args.assignee else None,
        "createdBy": {"userId": args.creator or args.actor},
        "watchers": [{"userId": w} for w in args.watcher],
    }
    if args.event_type == EventTypes.COMMENT_ADDED:
        task["newComment"] = {"content": "Test comment", "mentions": [{"userId": m} for m in args.mention]}

    event = {
        "eventType": args.event_type,
        "task": task,
        "userId": args.actor,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    queue = build_task_queue()
    with Connection(config.RABBITMQ_URL) as conn:
        producer = Producer(conn.channel(), exchange=queue.exchange)
        producer.publish(
            json.dumps(event),
            routing_key=f"task.{args.event_type}",
            content_type="application/json",
            delivery_mode=2,  # persistent
            declare=[queue],
        )
    print(f"📨 Published task event: {args.event_type} for task {args.task_id}")


if __name__ == "__main__":
    main()
