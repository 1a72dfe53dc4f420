"""Statistical generation modules: covariates, random effects and residuals."""
