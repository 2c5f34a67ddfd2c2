
from ensemblepkg.ensemble_en import EnsembleEN, ensemble_en, plot_cv_curves

import numpy as np
import pandas as pd


rng = np.random.default_rng(1)

# Two correlated predictors sharing the signal, one noise predictor
beta = np.array([0.0, 1.0, 1.0])
Sigma = np.eye(3)
Sigma[1, 2] = Sigma[2, 1] = 0.9
x = rng.multivariate_normal(np.zeros(3), Sigma, size=100)
y = x @ beta + rng.normal(size=100)

fit = ensemble_en(x, y, num_groups=2, num_lambdas_sparsity=50, num_lambdas_diversity=20,
                  num_folds=5, random_state=1)
coefs = fit.predict(type="coefficients")
print(coefs)
print(fit.lambda_sparsity_opt, fit.lambda_diversity_opt, fit.cv_opt)

# Group by group coefficients at the optimum
print(fit.betas[:, :, fit.index_opt])


# Same thing with a DataFrame and the estimator object
x_df = pd.DataFrame(x, columns=["noise", "signal_a", "signal_b"])

model = EnsembleEN(num_groups=3,
                   num_lambdas_sparsity=50,
                   num_lambdas_diversity=20,
                   num_folds=5,
                   num_threads=4,
                   random_state=1,
                   verbose=True)
model.fit(x_df, y)

print(model.result_.coef_frame())
print(model.result_.cv_table().sort_values("cv_mse").head(10))
print(model.predict(x_df.iloc[:5]))

plot_cv_curves(model.result_)
