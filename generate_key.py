import base64
import json
import sys

# Path to your downloaded Firebase service account JSON file
SERVICE_ACCOUNT_FILE = "firebase-service-account.json"


def encode_service_account(path: str = SERVICE_ACCOUNT_FILE) -> str:
    """
    Reads a service-account JSON file and returns the single-line base64 value
    expected in FIREBASE_SERVICE_ACCOUNT_KEY_BASE64.
    """
    with open(path, 'r', encoding='utf-8') as f:
        # json.dumps puts it on one line and escapes embedded newlines.
        service_account_json_string = json.dumps(json.load(f))
    return base64.b64encode(service_account_json_string.encode('utf-8')).decode('utf-8')


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    path = args[0] if args else SERVICE_ACCOUNT_FILE
    try:
        encoded = encode_service_account(path)
    except FileNotFoundError:
        print(f"Error: {path} not found. Make sure it's in the same directory.")
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: Could not decode JSON from {path}. Check file integrity. Error: {e}")
        return 1

    print("--- COPY THIS ENTIRE STRING ---")
    print(encoded)
    print("--- END COPY ---")
    return 0


if __name__ == '__main__':
    sys.exit(main())
