# main.py
import argparse
import json
import logging
import sys
from benchmark import ConfigError, SimulationRunner, format_cache, format_report, run_sweep
from visualize import plot_hit_miss_rate, plot_miss_breakdown, plot_sweep
from tracefile import write_trace

logger = logging.getLogger(__name__)


def load_config(path="config.json"):
    with open(path, "r") as f:
        return json.load(f)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Trace-driven cache miss simulator")
    parser.add_argument("--config", "-c", default="config.json", help="JSON configuration file")
    parser.add_argument("--trace", "-t", default=None, help="trace file, overrides trace.path in the config")
    parser.add_argument("--debug", "-D", action="store_true", help="output debug messages")
    parser.add_argument("--dump-cache", action="store_true", help="print per-block state after the run")
    parser.add_argument("--sweep", action="store_true", help="also replay the trace across the sweep configurations")
    parser.add_argument("--no-plots", action="store_true", help="skip writing plots")
    parser.add_argument("--save-trace", default=None, help="write the replayed trace to this file")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        format="%(levelname)s %(name)s: %(message)s",
        level=(logging.DEBUG if args.debug else logging.INFO),
    )
    logger.debug("args : %s", args)

    try:
        cfg = load_config(args.config)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot load configuration {args.config}: {e}", file=sys.stderr)
        return 1
    if args.trace:
        cfg.setdefault("trace", {})["path"] = args.trace
    out_cfg = cfg.get("output", {})

    try:
        runner = SimulationRunner(cfg)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1

    print("***** Cache Simulator Start *****")
    try:
        records = list(runner.records())
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 1
    except OSError as e:
        print(f"{cfg['trace'].get('path')} not found ({e.strerror})", file=sys.stderr)
        return 1

    if args.save_trace:
        count = write_trace(args.save_trace, records)
        logger.info("wrote %d records to %s", count, args.save_trace)

    summary = runner.run(records)
    print(format_report(summary))
    if args.dump_cache:
        print(format_cache(runner.cache))
    results_path = runner.save_results(summary, out_cfg)
    print("Results saved to:", results_path)

    rows = None
    if args.sweep:
        try:
            rows = run_sweep(cfg, records)
        except ConfigError as e:
            print(e, file=sys.stderr)
            return 1
        for row in rows:
            print(f"{row['config']['organization']:>28} {row['config']['replacement_policy']:>10} "
                  f"miss rate {row['miss_rate']:.4f}")

    if not args.no_plots:
        plot_miss_breakdown(summary, out_cfg.get("miss_plot", "results/miss_breakdown.png"))
        plot_hit_miss_rate(summary["hit_rate"], out_cfg.get("hitmiss_plot", "results/hit_miss_rate.png"))
        if rows:
            plot_sweep(rows, out_cfg.get("sweep_plot", "results/sweep.png"))
        print("Plots saved in results/")
    print("*****************Simulation End**************")
    return 0

if __name__ == "__main__":
    sys.exit(main())
