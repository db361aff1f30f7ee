import timeit
from blindcash import *

# Bank's / agency's key
bank_key = BankKey.generate(2048)
bank = Bank(bank_key)
issuer = TokenIssuer(bank_key.public)
verifier = TokenVerifier(bank_key.public)
analyzer = DoubleSpendAnalyzer()
agency = FairSigningCoordinator(bank_key)

token = bank.withdraw("alice", 20)
documents = [make_document(f"Agent {i}") for i in range(NUM_COPIES_REQUIRED)]

records = []

def bench_issue():
    issuer.issue("alice", 20)

def bench_withdraw():
    bank.withdraw("alice", 20)

def bench_accept():
    records.append(verifier.accept(token).unwrap())

def bench_analyze():
    global records
    analyzer.analyze(records[0], records[1])
    records = records[2:]

def bench_fair_signing():
    blinder = CandidateBlinder(bank_key.public, documents)
    assert blinder.verify(blinder.unblind(agency.sign(blinder)))

def run_benchmark(func_name, repeat=100, number=1):
    """Runs a benchmark and returns average, min, and max execution times."""
    times = timeit.repeat(f"{func_name}()", globals=globals(), repeat=repeat, number=number)
    tot_time = sum(times)
    avg_time = sum(times) / len(times)
    min_time = min(times)
    max_time = max(times)
    return tot_time, avg_time, min_time, max_time

benchmarks = [
    ("Token Issue", "bench_issue", 100),
    ("Token Withdraw", "bench_withdraw", 100),
    ("Token Accept", "bench_accept", 200),
    ("Double Spend Analyze", "bench_analyze", 100),
    ("Fair Signing Session", "bench_fair_signing", 20),
]

print(f"{'Benchmark':<30}{'Average Time (s)':<20}{'Min Time (s)':<20}{'Max Time (s)':<20}{'Total Time (s)':<20}")
print("=" * 100)
for name, func, repeat in benchmarks:
    tot_time, avg, min_time, max_time = run_benchmark(func, repeat=repeat)
    print(f"{name:<30}{avg:<20.9f}{min_time:<20.9f}{max_time:<20.9f}{tot_time:<20.9f}")
