"""
Smoke run against a live telehealth API.
Start the server first: python -m telehealth.api.app
Then run this: python scripts/smoke_api.py
"""

import json
import os

import requests

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


def banner(title):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)


def show(response):
    print(f"Status Code: {response.status_code}")
    try:
        body = response.json()
    except ValueError:
        body = response.text
    text = json.dumps(body, indent=2)
    print(f"Response: {text[:800]}{'... (truncated)' if len(text) > 800 else ''}")


def check_health():
    banner("Health Check")
    response = requests.get(f"{BASE_URL}/health")
    show(response)
    return response.status_code == 200


def check_without_token():
    banner("Consultations Without Token")
    response = requests.get(f"{BASE_URL}/api/consultations")
    show(response)
    return response.status_code == 401


def check_invalid_token():
    banner("Consultations With Invalid Token")
    response = requests.get(
        f"{BASE_URL}/api/consultations",
        headers={"Authorization": "Bearer not-a-token"},
    )
    show(response)
    return response.status_code == 401


def check_get(token, title, path, expected=200):
    banner(title)
    response = requests.get(f"{BASE_URL}{path}", headers={"Authorization": f"Bearer {token}"})
    show(response)
    return response.status_code == expected


def main():
    print("=" * 50)
    print("Telehealth API Smoke Run")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running!")
    print()

    token = input("Paste an identity token (see scripts/generate_dev_token.py): ").strip()
    if not token:
        print("ERROR: a token is required")
        return

    results = {}
    try:
        results["Health Check"] = check_health()
        results["No Token"] = check_without_token()
        results["Invalid Token"] = check_invalid_token()
        results["Current User"] = check_get(token, "Current User", "/api/me")
        results["Dashboard"] = check_get(token, "Dashboard", "/api/dashboard")
        results["Doctor Directory"] = check_get(token, "Doctor Directory", "/api/doctors")
        results["Consultations"] = check_get(token, "Consultations", "/api/consultations")
        results["Unknown Consultation"] = check_get(
            token, "Unknown Consultation", "/api/consultations/does-not-exist", expected=404
        )
        results["Prescriptions"] = check_get(token, "Prescriptions", "/api/prescriptions")
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, ok in results.items():
        print(f"{'✓ PASS' if ok else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
