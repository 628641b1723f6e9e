"""Smoke-check a running FTL server: metrics, month breakdown and alerts for sample records."""
import urllib.request, json, os
from datetime import date, timedelta
from dotenv import load_dotenv
load_dotenv()

base = os.getenv('FTL_API_URL', 'http://localhost:5000')
anchor = date.today()


def post(path, body):
    req = urllib.request.Request(
        f'{base}{path}',
        data=json.dumps(body).encode('utf-8'),
        headers={'Content-Type': 'application/json'}
    )
    r = urllib.request.urlopen(req)
    return json.loads(r.read())


# 12h duty every day for a week, 1:30 on the A320 each day
sample = {
    'staff_id': 'SMOKE01',
    'anchor_date': anchor.isoformat(),
    'duty_entries': [
        {'date': (anchor - timedelta(days=i)).isoformat(), 'duty_start': '06:00', 'duty_end': '18:00'}
        for i in range(7)
    ],
    'flight_entries': [
        {'date': (anchor - timedelta(days=i)).isoformat(), 'aircraft_type_id': 'A320', 'hours': '01:30'}
        for i in range(7)
    ],
}

# Test 1: Metrics at today's anchor
d = post('/api/ftl/metrics', sample)
print("=== TEST 1: FTL Metrics ===")
for name, item in d['data']['limits'].items():
    print(f"  {name:18} | total={item['total']:7.2f} | {item['percentage']:6.1f}% | {item['tier']}")
print(f"  Violations: {d['data']['violations']}")

# Test 2: Month breakdown
print()
d2 = post('/api/ftl/month', {**sample, 'year': anchor.year, 'month': anchor.month})
print("=== TEST 2: Month Breakdown ===")
print(f"Days: {len(d2['data']['days'])} | duty={d2['data']['month_duty_hours']} | flight={d2['data']['month_flight_hours']}")

# Test 3: Alerts
print()
d3 = post('/api/ftl/alerts', {'anchor_date': anchor.isoformat(), 'staff': [sample]})
print("=== TEST 3: Alerts ===")
print(f"Total alerts: {d3['data']['total_alerts']}")
for a in d3['data']['alerts']:
    print(f"  {a['severity']:8} | {a['title']} | {a['message']}")
