#!/usr/bin/env python3
"""
cliquetree: exact junction-tree inference

Usage:
    # Solve from JSON file
    python main.py solve --input problem.json --output result.json

    # Solve from command line
    python main.py solve --vars "A:2,B:2,C:2" --factors "f1:A,B:[[0.9,0.1],[0.2,0.8]]"

    # Condition on evidence and query a joint marginal
    python main.py solve -i problem.json --evidence "A=1" --query "B,C"

    # Run demos
    python main.py demo --example chain

    # Run tests
    python main.py test
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from cliquetree import (
    EngineOptions,
    JtreeError,
    JtreeEngine,
    TabularFactor,
    TabularModel,
    jtree_solve,
    __version__,
)

logger = logging.getLogger("cliquetree.cli")


def load_problem_from_json(filepath: str) -> Dict[str, Any]:
    """
    Load a discrete model from a JSON file.

    Expected format:
    {
        "variables": {"A": 2, "B": 3},
        "factors": {
            "f1": {"scope": ["A", "B"], "values": [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]}
        },
        "edges": [["A", "B"]],          (optional)
        "directed": false,              (optional)
        "evidence": {"A": 1}            (optional)
    }
    """
    with open(filepath, "r") as f:
        data = json.load(f)

    factors = {}
    for name, fdata in data["factors"].items():
        scope = tuple(fdata["scope"])
        values = np.array(fdata["values"], dtype=np.float64)
        factors[name] = (scope, values)

    return {
        "variables": {k: int(v) for k, v in data["variables"].items()},
        "factors": factors,
        "edges": [tuple(e) for e in data.get("edges", [])],
        "directed": bool(data.get("directed", False)),
        "evidence": {k: int(v) for k, v in data.get("evidence", {}).items()},
    }


def save_result_to_json(
    filepath: str,
    result: Any,
    marginals: Dict[str, np.ndarray],
    query: Optional[Tuple[Tuple[str, ...], np.ndarray]] = None,
    samples: Optional[List[Dict[str, int]]] = None,
) -> None:
    """Save inference result to JSON file."""
    output: Dict[str, Any] = {
        "log_partition": float(result.log_Z),
        "partition_function": float(result.Z),
        "evidence": {result.registry.var_name(v): x for v, x in result.engine.evidence.items()},
        "cliques": [list(result.registry.var_names(s)) for s in result.engine.clique_scopes],
        "marginals": {var: prob.tolist() for var, prob in marginals.items()},
    }
    if query is not None:
        output["query"] = {"variables": list(query[0]), "values": query[1].tolist()}
    if samples is not None:
        output["samples"] = samples

    with open(filepath, "w") as f:
        json.dump(output, f, indent=2)


def parse_vars_string(vars_str: str) -> Dict[str, int]:
    """Parse variables: 'A:2,B:3,C:2'"""
    var_domains = {}
    for part in vars_str.split(","):
        part = part.strip()
        if ":" in part:
            name, size = part.split(":")
            var_domains[name.strip()] = int(size.strip())
    return var_domains


def parse_factors_string(factors_str: str) -> Dict[str, Tuple[Tuple[str, ...], np.ndarray]]:
    """Parse factors: 'f1:A,B:[[0.9,0.1],[0.2,0.8]];f2:B,C:[[0.3,0.7],[0.5,0.5]]'"""
    factors = {}
    for entry in factors_str.split(";"):
        entry = entry.strip()
        if not entry:
            continue

        parts = entry.split(":")
        if len(parts) >= 3:
            name = parts[0].strip()
            scope = tuple(v.strip() for v in parts[1].split(","))
            values_str = ":".join(parts[2:])
            values = np.array(json.loads(values_str), dtype=np.float64)
            factors[name] = (scope, values)

    return factors


def parse_evidence_string(evidence_str: str) -> Dict[str, int]:
    """Parse evidence: 'A=1,C=0'"""
    evidence = {}
    for part in evidence_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"bad evidence entry {part!r}; expected NAME=VALUE")
        name, value = part.split("=", 1)
        evidence[name.strip()] = int(value.strip())
    return evidence


def parse_query_string(query_str: str) -> Tuple[str, ...]:
    """Parse a query: 'B,C'"""
    return tuple(v.strip() for v in query_str.split(",") if v.strip())


def options_from_args(args) -> EngineOptions:
    return EngineOptions(
        heuristic=args.heuristic,
        root=args.root,
        check_calibration=args.check,
        seed=args.seed,
    )


def cmd_solve(args):
    """Execute the solve command."""

    if args.input:
        print(f"Loading problem from: {args.input}")
        problem = load_problem_from_json(args.input)
    elif args.vars and args.factors:
        problem = {
            "variables": parse_vars_string(args.vars),
            "factors": parse_factors_string(args.factors),
            "edges": [],
            "directed": False,
            "evidence": {},
        }
    else:
        print("Error: Must specify either --input FILE or both --vars and --factors")
        return 1

    if args.evidence:
        problem["evidence"].update(parse_evidence_string(args.evidence))

    var_domains = problem["variables"]
    factors = problem["factors"]
    evidence = problem["evidence"]

    print("\nModel:")
    print(f"  Variables: {len(var_domains)}")
    for var, size in sorted(var_domains.items()):
        print(f"    {var}: domain size {size}")
    print(f"  Factors: {len(factors)}")
    for name, (scope, values) in sorted(factors.items()):
        print(f"    {name}: scope {scope}, shape {values.shape}")
    if evidence:
        print(f"  Evidence: {', '.join(f'{k}={v}' for k, v in sorted(evidence.items()))}")

    print("\nCalibrating clique tree...")
    try:
        result = jtree_solve(
            var_domains,
            factors,
            evidence=evidence,
            edges=problem["edges"],
            directed=problem["directed"],
            options=options_from_args(args),
        )
    except (JtreeError, ValueError) as e:
        logger.error("inference failed: %s", e)
        print(f"Error during inference: {e}")
        return 1

    reg = result.registry
    print(f"\nClique tree:")
    for c, scope in enumerate(result.engine.clique_scopes):
        print(f"  C{c}: {{{', '.join(reg.var_names(scope))}}}")

    print(f"\nResults:")
    print(f"  log(Z) = {result.log_Z:.10f}")
    print(f"  Z = {result.Z:.10e}")

    if result.log_Z == float("-inf"):
        print("  Status: evidence has zero probability")
        return 1

    marginals = {}
    if args.marginals or args.output:
        marginals = {
            name: result.marginal((name,))
            for name in reg.id_to_var_name
            if name not in evidence
        }
    if args.marginals:
        print("\nMarginal distributions:")
        for var, prob in sorted(marginals.items()):
            prob_str = ", ".join(f"{p:.6f}" for p in prob)
            print(f"  P({var}) = [{prob_str}]")

    query = None
    if args.query:
        qvars = parse_query_string(args.query)
        try:
            table = result.marginal(qvars)
        except (JtreeError, KeyError) as e:
            print(f"Error during query: {e}")
            return 1
        query = (qvars, table)
        print(f"\nP({', '.join(qvars)}) =")
        print(np.array2string(table, precision=6))

    samples = None
    if args.samples:
        samples = result.sample(args.samples, seed=args.seed)
        print(f"\nDrew {len(samples)} joint samples")
        for s in samples[:5]:
            print(f"  {s}")

    if args.output:
        save_result_to_json(args.output, result, marginals, query=query, samples=samples)
        print(f"\nResults saved to: {args.output}")

    return 0


def _banner(title: str) -> None:
    print(f"--- {title} ---")


def _chain_tables() -> Tuple[np.ndarray, np.ndarray]:
    return np.array([[0.9, 0.1], [0.2, 0.8]]), np.array([[0.3, 0.7], [0.5, 0.5]])


def demo_simple_chain() -> bool:
    """A -- B -- C: clique marginals against the joint table."""
    _banner("chain A -- B -- C")
    ab, bc = _chain_tables()
    model = TabularModel([2, 2, 2], [TabularFactor((0, 1), ab), TabularFactor((1, 2), bc)])
    engine = model.infer_engine()

    joint = model.joint().normalize()
    ok = True
    for v, name in enumerate("ABC"):
        got = engine.marginal([v]).data
        want = joint.marginalize((v,)).data
        ok &= bool(np.allclose(got, want))
        print(f"P({name}) = {np.array2string(got, precision=4)}  (joint: {np.array2string(want, precision=4)})")

    print(f"cliques: {engine.clique_scopes}, log Z = {engine.lognormconst():.6f}")
    return ok


def demo_loop() -> bool:
    """Binary 4-cycle with Ising couplings; triangulation adds one chord."""
    _banner("4-cycle")
    J = 0.5
    coupling = np.exp(J * np.array([[1.0, -1.0], [-1.0, 1.0]]))
    edges = [(0, 1), (1, 3), (3, 2), (2, 0)]
    engine = JtreeEngine([2] * 4, [TabularFactor(tuple(sorted(e)), coupling) for e in edges])

    engine.calibrate()
    print(f"fill edges: {engine.triangulation.fill_edges}")
    print(f"cliques:    {engine.clique_scopes}")

    opposite = engine.marginal([0, 3]).data
    print(f"P(x0, x3) =\n{np.array2string(opposite, precision=4)}")

    ok = bool(np.isclose(engine.lognormconst(), engine.joint_log_partition()))
    print(f"log Z = {engine.lognormconst():.6f} (brute force {engine.joint_log_partition():.6f})")
    return ok and any(len(s) == 3 for s in engine.clique_scopes)


def demo_evidence() -> bool:
    """The chain again, named, conditioned on A = 1."""
    _banner("chain | A = 1")
    ab, bc = _chain_tables()
    result = jtree_solve(
        {"A": 2, "B": 2, "C": 2},
        {"f_AB": (("A", "B"), ab), "f_BC": (("B", "C"), bc)},
        evidence={"A": 1},
    )
    got = result.marginal(("C",))
    want = ab[1] @ bc
    want = want / want.sum()
    print(f"P(C | A=1) = {np.array2string(got, precision=4)}  (by hand: {np.array2string(want, precision=4)})")
    print(f"P(A=1) * Z = {result.Z:.6f}")
    return bool(np.allclose(got, want))


DEMOS = {
    "chain": demo_simple_chain,
    "loop": demo_loop,
    "evidence": demo_evidence,
}


def cmd_demo(args):
    """Execute the demo command."""
    names = list(DEMOS) if args.example == "all" else [args.example]

    failed = []
    for name in names:
        try:
            passed = DEMOS[name]()
        except (JtreeError, ValueError) as e:
            logger.exception("demo %s failed", name)
            print(f"{name}: error: {e}")
            passed = False
        print(f"{name}: {'ok' if passed else 'MISMATCH'}\n")
        if not passed:
            failed.append(name)

    if failed:
        print(f"failed demos: {', '.join(failed)}")
        return 1
    return 0


def cmd_test(args):
    """Execute the test command."""
    import subprocess

    test_dir = Path(__file__).parent / "tests"
    if not test_dir.exists():
        print(f"Test directory not found: {test_dir}")
        return 1

    cmd = [sys.executable, "-m", "pytest", str(test_dir)]
    if args.verbose:
        cmd.append("-v")
    if args.coverage:
        cmd.extend(["--cov=cliquetree", "--cov-report=term-missing"])

    print(f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, cwd=Path(__file__).parent)
    return result.returncode


def cmd_info(args):
    """Display system information."""
    import networkx
    import scipy

    print(f"cliquetree v{__version__}")
    print("Exact junction-tree inference for discrete tabular models")
    print()
    print("Pipeline:")
    print("  triangulate (min-fill / min-degree) -> clique tree (max spanning tree)")
    print("  -> factor assignment -> two-pass sum-product calibration -> queries")
    print()
    print("Python:", sys.version.split()[0])
    print("NumPy:", np.__version__)
    print("SciPy:", scipy.__version__)
    print("NetworkX:", networkx.__version__)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cliquetree",
        description="cliquetree: exact junction-tree inference",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Solve from JSON file
  cliquetree solve --input problem.json --output result.json

  # Solve with command-line specification
  cliquetree solve --vars "A:2,B:2" --factors "f1:A,B:[[0.9,0.1],[0.2,0.8]]" -m

  # Evidence and a joint query
  cliquetree solve -i problem.json --evidence "A=1" --query "B,C"

  # Run demos
  cliquetree demo --example all

  # Run tests
  cliquetree test -v
"""
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"cliquetree {__version__}"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Solve command
    solve_parser = subparsers.add_parser("solve", help="Run exact inference on a model")
    solve_parser.add_argument("--input", "-i", type=str, help="Input JSON file")
    solve_parser.add_argument("--output", "-o", type=str, help="Output JSON file")
    solve_parser.add_argument("--vars", type=str, help="Variables: 'A:2,B:3'")
    solve_parser.add_argument("--factors", type=str, help="Factors: 'f1:A,B:[[...]]'")
    solve_parser.add_argument("--evidence", "-e", type=str, help="Evidence: 'A=1,C=0'")
    solve_parser.add_argument("--query", "-q", type=str, help="Joint marginal query: 'B,C'")
    solve_parser.add_argument(
        "--marginals", "-m",
        action="store_true",
        help="Compute and display single-variable marginals"
    )
    solve_parser.add_argument("--samples", "-n", type=int, default=0, help="Number of joint samples to draw")
    solve_parser.add_argument("--seed", type=int, default=None, help="Sampling seed")
    solve_parser.add_argument(
        "--heuristic",
        choices=["min_fill", "min_degree"],
        default="min_fill",
        help="Elimination heuristic (default: min_fill)"
    )
    solve_parser.add_argument("--root", type=int, default=0, help="Root clique index (default: 0)")
    solve_parser.add_argument(
        "--check",
        action="store_true",
        help="Verify sepset consistency after calibration"
    )

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demonstration examples")
    demo_parser.add_argument(
        "--example",
        choices=["chain", "loop", "evidence", "all"],
        default="all",
        help="Which example to run (default: all)"
    )

    # Test command
    test_parser = subparsers.add_parser("test", help="Run test suite")
    test_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    test_parser.add_argument("--coverage", "-c", action="store_true", help="With coverage")

    # Info command
    subparsers.add_parser("info", help="Show system information")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "solve":
        return cmd_solve(args)
    elif args.command == "demo":
        return cmd_demo(args)
    elif args.command == "test":
        return cmd_test(args)
    elif args.command == "info":
        return cmd_info(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
