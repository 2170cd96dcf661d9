# mypy: ignore-errors

import jax
import jax.numpy as jnp
import pytest

from blockgp import kernels
from blockgp.helpers import Path
from blockgp.partitioned import PartitionedMatrix, PartitionedPSDMatrix
from blockgp.test_utils import assert_allclose


@pytest.fixture
def data(random):
    x1 = random.uniform(-3, 3, (50, 5))
    x2 = random.uniform(-5, 5, (45, 5))
    return x1, x2


def test_constant(data):
    x1, x2 = data

    # Check for dimension issues when evaluated
    v = jnp.ones(3)
    with pytest.raises(ValueError):
        k1 = kernels.Constant(jnp.ones(3))
        k1.evaluate(v, v)

    # Check for dimension issues when multiplied and evaluated.
    k = jnp.ones(3) * kernels.Matern32(1.5)
    with pytest.raises(ValueError):
        k.evaluate(v, v)  # type: ignore

    # Check that multiplication has the expected behavior
    factor = 2.5
    k1 = kernels.Matern32(2.5)
    assert_allclose(factor * k1(x1, x2), (factor * k1)(x1, x2))


def test_custom(data):
    x1, x2 = data

    # Check that known kernels work as expected
    scale = 1.5
    k1 = kernels.Custom(
        lambda X1, X2: jnp.exp(-0.5 * jnp.sum(jnp.square((X1 - X2) / scale)))
    )
    k2 = kernels.ExpSquared(scale)
    assert_allclose(k1(x1, x2), k2(x1, x2))
    assert k1.state == {}
    assert k1.gradient(x1[0], x2[0]) == {}

    # Check that an invalid kernel raises as expected
    kernel = kernels.Custom(
        lambda X1, X2: jnp.exp(-0.5 * jnp.square((X1 - X2) / scale))
    )
    with pytest.raises(ValueError):
        kernel(x1, x2)


def test_ops(data):
    x1, x2 = data

    k1 = 1.5 * kernels.Matern32(2.5)
    k2 = 0.9 * kernels.ExpSineSquared(scale=1.5, gamma=0.3)

    assert_allclose(k1(x1, x2) + k2(x1, x2), (k1 + k2)(x1, x2))
    assert_allclose(k1(x1, x2) * k2(x1, x2), (k1 * k2)(x1, x2))
    assert_allclose((k1 + 0.3)(x1, x2), k1(x1, x2) + 0.3)
    assert sum([k1]) is k1


def test_dot_product(data):
    x1, x2 = data
    kernel = kernels.DotProduct()
    assert_allclose(kernel(x1, x2), jnp.dot(x1, x2.T))
    assert_allclose(kernel(x1[:, 0], x2[:, 0]), x1[:, 0][:, None] * x2[:, 0][None])


def test_diagonal(data):
    x1, _ = data
    kernel = 0.5 * kernels.Matern52(1.2)
    assert_allclose(kernel(x1), jnp.diag(kernel(x1, x1)))


def test_namespacing():
    k = kernels.ExpSquared(1.0) + kernels.ExpSquared(2.0)
    assert k.state == {
        Path.parse("ExpSquared_0/scale"): 1.0,
        Path.parse("ExpSquared_1/scale"): 2.0,
    }

    k = 1.5 * kernels.Matern32(2.5)
    assert k.state == {Path("Constant", "value"): 1.5, Path("Matern32", "scale"): 2.5}
    assert [str(p) for p in k.effective_hyperparameters] == [
        "Constant/value",
        "Matern32/scale",
    ]

    k = kernels.Sum(
        kernels.ExpSquared(10.0), kernels.ExpSquared(0.1), names=("long", "short")
    )
    assert set(map(str, k.state)) == {"long/scale", "short/scale"}

    k = (kernels.Exp(1.0) + kernels.Cosine(2.0)) * kernels.ExpSquared(3.0)
    assert set(map(str, k.state)) == {
        "Sum/Exp/scale",
        "Sum/Cosine/scale",
        "ExpSquared/scale",
    }

    with pytest.raises(ValueError):
        kernels.Sum(kernels.Exp(), kernels.Exp(), names=("a", "a")).state


def test_with_state(data):
    x1, x2 = data
    k = kernels.ExpSquared(1.0)
    updated = k.with_state({"scale": 2.0})
    assert k.scale == 1.0
    assert updated.scale == 2.0
    assert_allclose(updated(x1, x2), kernels.ExpSquared(2.0)(x1, x2))

    # Unknown names are not applied
    assert k.with_state({"gamma": 2.0}) is k

    k = kernels.ExpSquared(1.0) + kernels.Matern32(2.0)
    updated = k.with_state({"Matern32/scale": 0.5})
    assert updated.state[Path("ExpSquared", "scale")] == 1.0
    assert updated.state[Path("Matern32", "scale")] == 0.5
    assert k.state[Path("Matern32", "scale")] == 2.0


def test_evaluate_at_does_not_change_state(data):
    x1, x2 = data
    k = kernels.Sum(kernels.ExpSquared(1.0), kernels.Exp(2.0))
    expect = kernels.Sum(kernels.ExpSquared(0.3), kernels.Exp(2.0))
    calc = k.evaluate_at({"ExpSquared/scale": 0.3}, x1[0], x2[0])
    assert_allclose(calc, expect.evaluate(x1[0], x2[0]))
    assert k.state[Path("ExpSquared", "scale")] == 1.0

    calc = kernels.build_kernel_matrix(k, x1, x2, params={"Exp/scale": 0.7})
    assert_allclose(calc, (kernels.ExpSquared(1.0) + kernels.Exp(0.7))(x1, x2))


def test_block_unblock(data):
    x1, x2 = data
    k = kernels.ExpSineSquared(scale=1.5, gamma=0.3)
    blocked = k.block("gamma")
    assert k.blocked_hyperparameters == frozenset()
    assert blocked.blocked_hyperparameters == {Path("gamma")}
    assert blocked.effective_hyperparameters == [Path("scale")]
    assert set(blocked.gradient(x1[0], x2[0])) == {Path("scale")}
    assert blocked.unblock().blocked_hyperparameters == frozenset()
    assert blocked.unblock("gamma").effective_hyperparameters == [
        Path("scale"),
        Path("gamma"),
    ]
    with pytest.raises(ValueError):
        k.block("alpha")

    k = kernels.ExpSquared(1.0) + kernels.ExpSquared(2.0)
    blocked = k.block("ExpSquared_1/scale")
    assert blocked.blocked_hyperparameters == {Path("ExpSquared_1", "scale")}
    assert blocked.effective_hyperparameters == [Path("ExpSquared_0", "scale")]
    assert set(blocked.gradient(x1[0], x2[0])) == {Path("ExpSquared_0", "scale")}
    with pytest.raises(ValueError):
        k.block("Exp/scale")


def test_scaled(data):
    x1, x2 = data

    def g(x):
        return 1.0 + jnp.sum(jnp.square(x))

    base = kernels.Matern32(1.5)
    k = kernels.Scaled(base, g)
    gx1 = jax.vmap(g)(x1)
    gx2 = jax.vmap(g)(x2)
    assert_allclose(k(x1, x2), gx1[:, None] * base(x1, x2) * gx2[None, :])
    assert k.state == base.state
    assert k.with_state({"scale": 0.5}).kernel.scale == 0.5


def test_decomposable(random):
    t1 = random.uniform(0, 10, 20)
    t2 = random.uniform(0, 10, 15)
    z1 = random.normal(size=(20, 3))
    z2 = random.normal(size=(15, 3))
    k_t = kernels.ExpSquared(2.0)
    k_z = kernels.Matern32(1.0)

    k = kernels.Decomposable((k_t, k_z))
    assert_allclose(k((t1, z1), (t2, z2)), k_t(t1, t2) + k_z(z1, z2))
    assert set(map(str, k.state)) == {"ExpSquared/scale", "Matern32/scale"}

    k = kernels.Decomposable((k_t, k_z), reducer="product", names=("time", "space"))
    assert_allclose(k((t1, z1), (t2, z2)), k_t(t1, t2) * k_z(z1, z2))
    assert set(map(str, k.state)) == {"time/scale", "space/scale"}

    with pytest.raises(ValueError):
        kernels.Decomposable((k_t, k_z), reducer="max")


@pytest.mark.parametrize("block_size", [1, 7, 16, 50, 80])
def test_blocked_kernel_matrix(data, block_size):
    x1, x2 = data
    k = 1.5 * kernels.Matern32(2.5) + kernels.ExpSquared(0.8)

    K = k.build_blocked_kernel_matrix(x1, block_size)
    assert isinstance(K, PartitionedPSDMatrix)
    assert sum(K.row_sizes) == x1.shape[0]
    assert_allclose(K.to_dense(), k(x1, x1))

    C = k.build_blocked_cross_kernel_matrix(x1, x2, block_size, 11)
    assert isinstance(C, PartitionedMatrix)
    assert C.col_sizes == (11, 11, 11, 11, 1)
    assert_allclose(C.to_dense(), k(x1, x2))


def test_blocked_gradient_matrices(data):
    x1, _ = data
    k = kernels.ExpSquared(1.2) * kernels.Constant(0.4)
    grads = kernels.build_blocked_gradient_matrices(k, x1, 13)
    assert set(grads) == set(k.effective_hyperparameters)

    x = x1[:20]
    grads = kernels.build_blocked_gradient_matrices(k, x, 6)
    for path, value in grads.items():
        expect = jax.vmap(
            jax.vmap(lambda a, b: k.gradient(a, b)[path], in_axes=(None, 0)),
            in_axes=(0, None),
        )(x, x)
        assert_allclose(value.to_dense(), expect)

    for path, value in k.build_blocked_gradient_matrices(x, 6).items():
        assert_allclose(value.to_dense(), grads[path].to_dense())


@pytest.mark.parametrize(
    "kernel",
    [
        kernels.Custom(lambda x, y: jnp.exp(-0.5 * jnp.sum(jnp.square(x - y)))),
        kernels.Constant(0.5),
        kernels.DotProduct(),
        kernels.Polynomial(order=1.5, scale=0.5, sigma=1.3),
        kernels.Exp(0.5),
        kernels.ExpSquared(0.5),
        kernels.Matern32(0.5),
        kernels.Matern52(0.5),
        kernels.Cosine(0.5),
        kernels.ExpSineSquared(0.5, gamma=1.5),
        kernels.RationalQuadratic(0.5, alpha=1.5),
    ],
)
def test_kernel_as_pytree(data, kernel):
    x1, x2 = data

    def check_roundtrip(kernel):
        expect = jax.jit(lambda kernel_: kernel_(x1, x2))(kernel)
        flat, treedef = jax.tree_util.tree_flatten(kernel)
        calc = jax.tree_util.tree_unflatten(treedef, flat)(x1, x2)
        assert_allclose(calc, expect)

    check_roundtrip(kernel)
    check_roundtrip(0.5 * kernel)
    check_roundtrip(kernel + kernel)
    check_roundtrip(kernel.block(*kernel.hyperparameters))
