"""
AWS Lambda function to trigger the market catalog sync via the API endpoint.

Deploy this to Lambda and schedule with EventBridge to keep token data fresh.
"""

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Trigger the catalog sync via API endpoint.

    Environment Variables:
        API_URL: The service URL (e.g., https://xxx.awsapprunner.com)
        CRON_SECRET: Bearer secret expected by /market/tokens/sync/cron
        SYNC_TIMEOUT: Request timeout in seconds (default: 300)

    EventBridge Rule Example:
        Schedule: cron(0/15 * * * ? *)  # Every 15 minutes
    """
    api_url = os.environ.get("API_URL")
    if not api_url:
        return {"statusCode": 500, "body": json.dumps({"error": "API_URL environment variable not set"})}

    secret = os.environ.get("CRON_SECRET")
    if not secret:
        return {"statusCode": 500, "body": json.dumps({"error": "CRON_SECRET environment variable not set"})}

    timeout = int(os.environ.get("SYNC_TIMEOUT", "300"))

    endpoint = f"{api_url.rstrip('/')}/market/tokens/sync/cron"

    request = urllib.request.Request(
        endpoint,
        method="GET",
        headers={"Authorization": f"Bearer {secret}", "User-Agent": "MarketSyncTrigger/1.0"},
    )

    try:
        print(f"Triggering catalog sync at: {endpoint}")

        with urllib.request.urlopen(request, timeout=timeout) as response:
            result = json.loads(response.read().decode("utf-8"))

            print(f"Catalog sync completed: {json.dumps(result, indent=2)}")

            return {"statusCode": 200, "body": json.dumps({"success": True, "sync_result": result})}

    except urllib.error.HTTPError as e:
        error_body = e.read().decode("utf-8") if e.fp else str(e)
        print(f"Sync request failed with HTTP {e.code}: {error_body}")

        return {"statusCode": e.code, "body": json.dumps({"success": False, "error": f"HTTP {e.code}: {error_body}"})}

    except urllib.error.URLError as e:
        print(f"Sync request failed: {str(e)}")

        return {"statusCode": 500, "body": json.dumps({"success": False, "error": f"Connection error: {str(e)}"})}


# For local testing
if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1:
        os.environ["API_URL"] = sys.argv[1]

    result = lambda_handler({}, None)
    print(json.dumps(result, indent=2))
