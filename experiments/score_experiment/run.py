#!/usr/bin/env python
from tqdm.auto import tqdm
import os, argparse, logging, math, yaml
import pandas as pd
from pathlib import Path


def parse_args():
    p = argparse.ArgumentParser()
    p.add_argument(
        "-b",
        "--cpu",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Run on CPU (default). Use --no-cpu to let JAX pick an accelerator.",
    )
    p.add_argument(
        "-c",
        "--config",
        type=str,
        default="experiment.yaml",
        help="Path to the YAML configuration file.",
    )
    p.add_argument(
        "-s",
        "--stem",
        type=str,
        default="score",
        help="Base name (stem) for the CSV and PDF saved to the results/ directory.",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log estimator progress at INFO level.",
    )
    return p.parse_args()


args = parse_args()
use_cpu = args.cpu
config_path = args.config
stem = args.stem

logging.basicConfig(
    level=logging.INFO if args.verbose else logging.WARNING,
    format="%(asctime)s %(name)s %(levelname)s: %(message)s",
)

if use_cpu:
    os.environ["JAX_PLATFORM_NAME"] = "cpu"

    # Tell XLA/Eigen to multi-thread on CPU
    os.environ["XLA_FLAGS"] = "--xla_cpu_multi_thread_eigen=true intrasession=true"


import jax, jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

from kexpfam.estimator import Nystrom
from kexpfam.registry import BASIS_REGISTRY, DISTRIBUTION_REGISTRY, KERNEL_REGISTRY
from kexpfam.util import grad_error, make_main_plot

for device in jax.devices():
    print(device)

# Load config file
with open(config_path) as f:
    cfg = yaml.safe_load(f)

# Static constants from config
REPLICATES = int(cfg["replicates"])  # number of independent data draws
DIM = int(cfg["dim"])
NUM_TRAIN = int(cfg["num_train"])
NUM_TEST = int(cfg["num_test"])
SIGMAS = [
    math.exp(x) for x in map(float, cfg["ln_sigmas"])
]  # kernel bandwidths looped over
LAM = float(cfg["lam"])
LAM_L2 = float(cfg.get("lam_l2", 0.0))
BASIS_MODES = list(cfg["basis_modes"])  # keys of BASIS_REGISTRY
NUM_BASIS = list(map(int, cfg["num_basis"]))  # number of basis points / components

KERNEL_CLASS = KERNEL_REGISTRY[cfg["kernel"]]
dist = DISTRIBUTION_REGISTRY[cfg["dist"]](DIM, **cfg.get("dist_kwargs", {}))


# -------------- Define an experiment over one-replicate ------------


def process_one_rep(rep):
    rep_key = jax.random.key(rep)
    rep_key, train_key, test_key = jax.random.split(rep_key, 3)

    X_train = dist.sample(train_key, NUM_TRAIN)
    X_test = dist.sample(test_key, NUM_TEST)
    true_scores = dist.score(X_test)

    rows = []

    sigma_pbar = tqdm(SIGMAS, position=1, leave=False)
    for sigma in sigma_pbar:
        sigma_pbar.set_description(f"Sigma = {sigma:.3f}")
        kernel = KERNEL_CLASS(sigma=sigma)

        for mode in BASIS_MODES:
            draw_mask = BASIS_REGISTRY[mode]

            m_pbar = tqdm(NUM_BASIS, position=2, leave=False)
            for m in m_pbar:
                m_pbar.set_description(f"{mode}: m = {m}")

                rep_key, basis_key = jax.random.split(rep_key)
                mask = draw_mask(basis_key, NUM_TRAIN, DIM, m)

                est = Nystrom.from_mask(X_train, mask, kernel, lam=LAM, lam_l2=LAM_L2)
                est.fit()
                est.set_data(X_test)

                rows.append(
                    {
                        "replicate": rep,
                        "sigma": sigma,
                        "basis_mode": mode,
                        "num_basis": m,
                        "system_size": est.system_size,
                        "score": est.score(),
                        "grad_error": float(grad_error(est.grad(), true_scores)),
                    }
                )

    return rows


# --------------- Run replicates -----------------

results = []
for rep in tqdm(range(REPLICATES), desc="Replicates"):
    results.extend(process_one_rep(rep))

# --------------- Save output -----------------

outdir = Path("results")
outdir.mkdir(exist_ok=True)
df = pd.DataFrame(results)
df.to_csv(outdir / f"{stem}.csv", index=False)
print(f"Saved results/{stem}.csv")

fig, _ = make_main_plot(df, metric="grad_error", title=dist.name)
fig.savefig(outdir / f"{stem}.pdf", bbox_inches="tight")
print(f"Saved results/{stem}.pdf")
