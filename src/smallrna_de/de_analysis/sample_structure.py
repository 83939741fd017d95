"""
Sample-level structure of transformed expression: PCA scores, pairwise
sample distances and the most variable markers. Produces the data behind
PCA and heatmap figures; rendering is left to the caller.
"""

import pandas as pd
import numpy as np
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class SampleStructureAnalyzer:
    """Explore sample relationships in a transformed expression matrix."""

    def __init__(self, expression: pd.DataFrame, metadata: Optional[pd.DataFrame] = None):
        """
        Parameters
        ----------
        expression : pd.DataFrame
            Transformed expression (markers x samples), e.g. VST counts
        metadata : pd.DataFrame, optional
            Sample metadata indexed by sample_id, joined onto PCA scores
        """
        self.expression = expression
        self.metadata = metadata

    def top_variable(self, n: int = 500) -> pd.DataFrame:
        """Rows of the ``n`` markers with the highest variance across samples."""
        variances = self.expression.var(axis=1)
        top = variances.sort_values(ascending=False, kind='mergesort').head(n).index
        return self.expression.loc[top]

    def pca_analysis(
        self,
        n_components: int = 2,
        n_top: Optional[int] = 500,
        scale: bool = False
    ) -> Tuple[pd.DataFrame, np.ndarray]:
        """
        Perform PCA on samples.

        Parameters
        ----------
        n_components : int
            Number of components, capped at min(samples, markers)
        n_top : int, optional
            Restrict to the most variable markers (None uses all)
        scale : bool
            Standardize markers before PCA

        Returns
        -------
        Tuple[pd.DataFrame, np.ndarray]
            PCA scores (samples x PCs, plus metadata columns when given)
            and explained variance ratios
        """
        data = self.top_variable(n_top) if n_top else self.expression

        # Samples as rows, markers as columns
        X = data.T.values
        if scale:
            X = StandardScaler().fit_transform(X)

        n_components = min(n_components, X.shape[0], X.shape[1])
        pca = PCA(n_components=n_components)
        scores = pca.fit_transform(X)

        scores_df = pd.DataFrame(
            scores,
            index=data.columns,
            columns=[f'PC{i+1}' for i in range(n_components)]
        )
        if self.metadata is not None:
            scores_df = scores_df.join(self.metadata)

        logger.info(f"PCA variance explained: {np.round(pca.explained_variance_ratio_, 3).tolist()}")
        return scores_df, pca.explained_variance_ratio_

    def sample_distances(self, metric: str = 'euclidean') -> pd.DataFrame:
        """Square sample x sample distance matrix."""
        distances = squareform(pdist(self.expression.T.values, metric=metric))
        return pd.DataFrame(
            distances,
            index=self.expression.columns,
            columns=self.expression.columns
        )
