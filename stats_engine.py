"""
stats_engine.py -- Inferential statistics for A/B outcome sequences.

A fair feed should look like a sequence of independent coin flips. Each
analyzer here tests one way a seeded or steered feed departs from that:

  1. Frequency skew (chi-squared goodness-of-fit, 1 d.o.f.)
  2. Clustering / over-alternation (Wald-Wolfowitz runs test + longest run)
  3. Periodicity (lagged self-agreement for short periods)
  4. Shannon entropy of the A/B distribution
  5. Exact repetition of the most recent block

All math is pure Python (no scipy/numpy). Uses standard approximations
for distribution CDFs (Lanczos gamma, continued-fraction gamma).
"""

import math
import logging

logger = logging.getLogger(__name__)

CHI2_CRITICAL_1DF = 3.84      # p < 0.05
RUNS_Z_CRITICAL = 1.96        # two-tailed p < 0.05
MAX_RANDOM_RUN = 7
CYCLE_MIN_STRENGTH = 0.60
CYCLE_MAX_PERIOD = 15
LOW_ENTROPY = 0.75
REPEAT_BLOCK = 10


# ============================================================================
# Pure Python distribution functions
# ============================================================================

def _normal_cdf(x):
    """Standard normal CDF via Abramowitz & Stegun rational approx (~1e-7)."""
    if x < -8.0:
        return 0.0
    if x > 8.0:
        return 1.0
    t = 1.0 / (1.0 + 0.2316419 * abs(x))
    d = 0.3989422804014327  # 1/sqrt(2*pi)
    p = d * math.exp(-x * x / 2.0) * t * (
        0.319381530 + t * (-0.356563782 + t * (
            1.781477937 + t * (-1.821255978 + t * 1.330274429)))
    )
    return 1.0 - p if x >= 0 else p


def _log_gamma(x):
    """Log-gamma via Lanczos approximation (g=7, 9 coefficients)."""
    if x <= 0:
        return float('inf')
    c = [
        0.99999999999980993, 676.5203681218851, -1259.1392167224028,
        771.32342877765313, -176.61502916214059, 12.507343278686905,
        -0.13857109526572012, 9.9843695780195716e-6, 1.5056327351493116e-7,
    ]
    x -= 1
    t = c[0]
    for i in range(1, 9):
        t += c[i] / (x + i)
    w = x + 7.5
    return 0.5 * math.log(2 * math.pi) + (x + 0.5) * math.log(w) - w + math.log(t)


def _gamma_lower(a, x, max_iter=200, tol=1e-10):
    """Lower regularized incomplete gamma P(a, x) via series / CF."""
    if x <= 0:
        return 0.0
    if x < a + 1.0:
        ap = a
        total = 1.0 / a
        delta = 1.0 / a
        for _ in range(max_iter):
            ap += 1.0
            delta *= x / ap
            total += delta
            if abs(delta) < tol * abs(total):
                break
        return total * math.exp(-x + a * math.log(x) - _log_gamma(a))
    b_cf = x + 1.0 - a
    d = 1.0 / b_cf if abs(b_cf) > 1e-30 else 1e30
    h = d
    for i in range(1, max_iter + 1):
        an = -i * (i - a)
        b_cf += 2.0
        d = an * d + b_cf
        if abs(d) < 1e-30:
            d = 1e-30
        c = b_cf + an / (h if abs(h) > 1e-30 else 1e-30)
        if abs(c) < 1e-30:
            c = 1e-30
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < tol:
            break
    q = math.exp(-x + a * math.log(x) - _log_gamma(a)) * h
    return 1.0 - q


def chi2_sf(x, df):
    """Upper tail of the chi-squared distribution: P(X >= x | df)."""
    if x <= 0:
        return 1.0
    return max(0.0, min(1.0, 1.0 - _gamma_lower(df / 2.0, x / 2.0)))


def normal_two_tail_p(z):
    """Two-tailed p-value for a standard normal z statistic."""
    return max(0.0, min(1.0, 2.0 * (1.0 - _normal_cdf(abs(z)))))


def binary_entropy(p):
    """Entropy in bits of a Bernoulli(p) variable; 0 at p in {0, 1}."""
    if p <= 0.0 or p >= 1.0:
        return 0.0
    return -(p * math.log2(p) + (1.0 - p) * math.log2(1.0 - p))


# ============================================================================
# Analyzer 1: Frequency skew
# ============================================================================

def analyze_frequency(values):
    """
    Chi-squared goodness-of-fit of A/B counts against n/2 each.
    """
    n = len(values)
    count_a = sum(1 for v in values if v == "A")
    count_b = n - count_a
    if n < 2:
        return _result("frequency", "insufficient_data", False,
                       f"Need >= 2 outcomes (have {n})",
                       {"n": n, "count_a": count_a, "count_b": count_b})

    expected = n / 2.0
    chi2 = ((count_a - expected) ** 2 + (count_b - expected) ** 2) / expected
    p_value = chi2_sf(chi2, 1)
    skewed = chi2 > CHI2_CRITICAL_1DF

    if skewed:
        heavy = "A" if count_a > count_b else "B"
        summary = f"Skewed toward {heavy}: {count_a}A/{count_b}B, chi2={chi2:.2f}, p={p_value:.3f}"
    else:
        summary = f"Balanced: {count_a}A/{count_b}B, chi2={chi2:.2f}"

    return _result("frequency", "skewed" if skewed else "balanced", skewed, summary, {
        "n": n, "count_a": count_a, "count_b": count_b,
        "chi2": round(chi2, 4), "p_value": round(p_value, 4),
    })


# ============================================================================
# Analyzer 2: Runs test
# ============================================================================

def count_runs(values):
    """Return (number of maximal runs, longest run length)."""
    if not values:
        return 0, 0
    runs = 1
    longest = 1
    current = 1
    for prev, cur in zip(values, values[1:]):
        if cur == prev:
            current += 1
            longest = max(longest, current)
        else:
            runs += 1
            current = 1
    return runs, longest


def analyze_runs(values):
    """
    Wald-Wolfowitz runs test.
    Too few runs -> clustering (streak seeding); too many -> forced alternation.
    A single run longer than MAX_RANDOM_RUN is flagged on its own.
    """
    n = len(values)
    if n < 2:
        return _result("runs", "insufficient_data", False,
                       f"Need >= 2 outcomes (have {n})", {"n": n})

    count_a = sum(1 for v in values if v == "A")
    count_b = n - count_a
    runs, longest = count_runs(values)

    two_ab = 2.0 * count_a * count_b
    expected = two_ab / n + 1.0
    variance = two_ab * (two_ab - n) / (n * n * (n - 1))
    z = abs(runs - expected) / math.sqrt(variance if variance > 0 else 1.0)
    anomalous = z > RUNS_Z_CRITICAL or longest > MAX_RANDOM_RUN

    if not anomalous:
        verdict = "random"
        summary = f"Runs consistent with random: {runs} runs (expected {expected:.1f}), longest {longest}"
    elif longest > MAX_RANDOM_RUN:
        verdict = "long_streak"
        summary = f"Streak of {longest} exceeds {MAX_RANDOM_RUN}"
    elif runs < expected:
        verdict = "clustered"
        summary = f"Clustered: {runs} runs vs {expected:.1f} expected (z={z:.2f})"
    else:
        verdict = "alternating"
        summary = f"Over-alternating: {runs} runs vs {expected:.1f} expected (z={z:.2f})"

    return _result("runs", verdict, anomalous, summary, {
        "n": n, "runs": runs, "expected_runs": round(expected, 4),
        "variance": round(variance, 4), "z_score": round(z, 4),
        "p_value": round(normal_two_tail_p(z), 4),
        "max_consecutive": longest,
    })


# ============================================================================
# Analyzer 3: Periodicity
# ============================================================================

def analyze_cycles(values, max_period=CYCLE_MAX_PERIOD, top=2):
    """
    For each candidate period p, the share of positions where v[i] == v[i-p].
    Periods above CYCLE_MIN_STRENGTH are reported, strongest first.
    """
    n = len(values)
    upper = min(max_period, n // 3)
    periods = []
    for p in range(2, upper + 1):
        matches = sum(1 for i in range(p, n) if values[i] == values[i - p])
        strength = matches / (n - p)
        if strength > CYCLE_MIN_STRENGTH:
            periods.append({"period": p, "strength": strength})

    periods.sort(key=lambda c: c["strength"], reverse=True)
    periods = periods[:top]
    detected = bool(periods)

    if detected:
        summary = "Periodic: " + ", ".join(
            f"P{c['period']}({c['strength']:.2f})" for c in periods)
    elif upper < 2:
        summary = f"Need >= 6 outcomes for cycle search (have {n})"
    else:
        summary = f"No period in 2..{upper} above {CYCLE_MIN_STRENGTH:.2f}"

    return _result("cycles", "periodic" if detected else "aperiodic", detected, summary, {
        "n": n, "max_period": upper,
        "periods": [{"period": c["period"], "strength": round(c["strength"], 4)} for c in periods],
    })


# ============================================================================
# Analyzer 4: Entropy
# ============================================================================

def analyze_entropy(values):
    """Normalized Shannon entropy of the A/B distribution (1.0 = fair coin)."""
    n = len(values)
    if n == 0:
        return _result("entropy", "insufficient_data", False, "No outcomes", {"n": 0})
    p_a = sum(1 for v in values if v == "A") / n
    entropy = binary_entropy(p_a)
    low = entropy < LOW_ENTROPY
    summary = f"Entropy {entropy:.3f} bits ({'low' if low else 'normal'})"
    return _result("entropy", "low_entropy" if low else "normal", low, summary, {
        "n": n, "p_a": round(p_a, 4), "entropy": round(entropy, 4),
    })


# ============================================================================
# Analyzer 5: Pattern repetition
# ============================================================================

def analyze_pattern_repeat(values, block=REPEAT_BLOCK, min_length=20):
    """
    Does the most recent block of outcomes appear verbatim earlier on?
    Matches are counted non-overlapping, left to right.
    """
    n = len(values)
    if n < min_length:
        return _result("pattern_repeat", "insufficient_data", False,
                       f"Need >= {min_length} outcomes (have {n})",
                       {"n": n, "matches": 0, "repetition_rate": 0.0})

    text = "".join(values)
    current = text[-block:]
    history = text[:-block]
    matches = history.count(current)
    rate = matches / (len(history) / float(block))
    repeating = matches > 0

    summary = (f"Last {block} repeated {matches}x earlier" if repeating
               else f"Last {block} not seen earlier")
    return _result("pattern_repeat", "repeating" if repeating else "novel", repeating, summary, {
        "n": n, "block": current, "matches": matches,
        "repetition_rate": round(rate, 4),
    })


def run_all(values):
    """Run every sequence analyzer; returns {name: result}."""
    vals = list(values)
    results = [
        analyze_frequency(vals),
        analyze_runs(vals),
        analyze_cycles(vals),
        analyze_entropy(vals),
        analyze_pattern_repeat(vals),
    ]
    flagged = [r["name"] for r in results if r["flagged"]]
    if flagged:
        logger.debug("Sequence analyzers flagged: %s", ", ".join(flagged))
    return {r["name"]: r for r in results}


# ============================================================================
# Helpers
# ============================================================================

def _result(name, verdict, flagged, summary, detail):
    """Build a standardized analyzer result dict."""
    return {
        "name": name,
        "verdict": verdict,
        "flagged": bool(flagged),
        "summary": summary,
        "detail": detail,
    }
