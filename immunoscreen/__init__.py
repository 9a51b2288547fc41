"""immunoscreen: Overview

This package walks through the two analyses run on the immune-marker
cohorts, one module per step:

1) Data audit (``immunoscreen.data_audit``)
	- Why: know the table before transforming it (missing values, duplicate
	  IDs, values where log2(x + 1) is undefined, class balance).

2) Preprocessing (``immunoscreen.preprocessing``)
	- Why: markers live on very different scales; selected markers are
	  log2(x + 1)-transformed and every marker is z-scored, by column name.

3) Unsupervised exploration (``immunoscreen.clustering``)
	- Why: look for immune-response subgroups without using infection history.
	- What it does: UMAP and t-SNE embeddings, Gaussian mixtures selected by
	  BIC, within-cluster sum of squares and average silhouette width.

4) Unaware-infection detection (``immunoscreen.classification``)
	- Why: flag subjects who report no infection but whose profile looks like
	  hybrid immunity.
	- What it does: k-NN, Random Forest and RBF-SVM tuned on shared folds,
	  feature importance, a majority vote on the unlabelled cohort, and four
	  outcome categories against self-report.

5) Cohort export (``immunoscreen.export_unaware_cohort``)
	- Why: hand the flagged subjects on for follow-up.
"""
