# visualize.py
import os
import numpy as np
import matplotlib.pyplot as plt

MISS_KINDS = ("compulsory", "capacity", "conflict")


def _ensure_dir(outpath):
    dirname = os.path.dirname(outpath)
    if dirname:
        os.makedirs(dirname, exist_ok=True)


def plot_hit_miss_rate(hit_rate, outpath):
    _ensure_dir(outpath)
    plt.figure(figsize=(4,4))
    labels = ['Hit', 'Miss']
    sizes = [hit_rate, 1.0 - hit_rate]
    plt.pie(sizes, labels=labels, autopct='%1.1f%%')
    plt.title("Cache Hit/Miss Rate")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()


def plot_miss_breakdown(summary, outpath):
    """
    Bar chart of compulsory / capacity / conflict misses for one run,
    annotated with the overall miss rate.
    """
    _ensure_dir(outpath)
    breakdown = summary["miss_breakdown"]
    counts = [breakdown[k] for k in MISS_KINDS]
    cfg = summary["config"]
    plt.figure(figsize=(6,4))
    bars = plt.bar(MISS_KINDS, counts, color=["tab:blue", "tab:orange", "tab:red"])
    plt.bar_label(bars)
    plt.title(f"{cfg['organization']}, {cfg['replacement_policy']} "
              f"(miss rate {summary['miss_rate']:.1%})")
    plt.ylabel("Misses")
    plt.grid(True, axis="y")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()


def plot_sweep(rows, outpath):
    """
    Stacked miss breakdown for each configuration of a sweep.
    """
    _ensure_dir(outpath)
    labels = [f"{r['config']['organization']}\n{r['config']['replacement_policy']}" for r in rows]
    counts = np.array([[r["miss_breakdown"][k] for k in MISS_KINDS] for r in rows]).reshape(len(rows), len(MISS_KINDS))
    x = np.arange(len(rows))
    bottom = np.zeros(len(rows))
    plt.figure(figsize=(max(6, 1.5 * len(rows)), 5))
    for i, kind in enumerate(MISS_KINDS):
        plt.bar(x, counts[:, i], bottom=bottom, label=kind)
        bottom += counts[:, i]
    plt.xticks(x, labels, rotation=45, ha="right", fontsize=8)
    plt.ylabel("Misses")
    plt.title("Miss breakdown by configuration")
    plt.legend()
    plt.grid(True, axis="y")
    plt.tight_layout()
    plt.savefig(outpath)
    plt.close()
