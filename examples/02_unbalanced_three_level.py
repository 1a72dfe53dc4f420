"""
Unbalanced Three-Level Example
==============================

Students (level 1) within classrooms (level 2) within schools (level 3),
with classroom sizes drawn between 15 and 30 and a school-level covariate.
"""

import simreg

print("=" * 60)
print("UNBALANCED THREE-LEVEL DESIGN")
print("=" * 60)

data = simreg.simulate_nested3(
    fixed="~1 + ses + funding",
    fixed_param=[50, 2, 1.5],
    variables={
        "ses": {"var_type": "continuous"},
        "funding": {"var_type": "continuous", "mean": 10, "sd": 2, "var_level": 3},
    },
    k=8,
    n=4,
    p=None,
    random2=simreg.RandomEffectSpec(variances=[5, 1], terms="~1 + ses", correlations=[0.3]),
    random3=simreg.RandomEffectSpec(variances=[3]),
    unbal2={"min": 15, "max": 30},
    error={"variance": 25},
    seed=2137,
)

print(f"Rows: {len(data)}")
print(f"Classroom sizes: {data.attrs['level1_sizes']}")
print(data.groupby("clust3_id")[["funding", "b0_3"]].first())
