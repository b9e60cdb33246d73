import sys
import os
import argparse
from datetime import timedelta

# Add parent directory to path to import routes
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from routes.deps import create_access_token
from constants import Roles


def main():
    parser = argparse.ArgumentParser(description="Mint a development token for the notification socket.")
    parser.add_argument("user_id")
    parser.add_argument("--email", default="dev@taskflow.local")
    parser.add_argument("--role", default=Roles.TEAM_MEMBER, choices=Roles.ALL)
    parser.add_argument("--hours", type=int, default=24)
    args = parser.parse_args()

    token = create_access_token(
        {"id": args.user_id, "email": args.email, "role": args.role},
        expires_delta=timedelta(hours=args.hours),
    )
    print(f"TOKEN={token}")
    print(f"WS_URL=ws://localhost:4003/ws?token={token}")


if __name__ == "__main__":
    main()
