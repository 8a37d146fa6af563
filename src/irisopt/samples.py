from __future__ import annotations

from pathlib import Path
from typing import Dict, List

EXAMPLE_PASS_SEQUENCES: List[List[str]] = [
    ["mem2reg", "simplifycfg", "instcombine"],
    ["mem2reg", "loop-simplify", "loop-rotate", "licm", "loop-unroll", "simplifycfg"],
    [
        "mem2reg", "gvn", "simplifycfg", "instcombine", "loop-simplify", "loop-rotate",
        "licm", "loop-unroll", "sccp", "dce", "simplifycfg",
    ],
]

EXAMPLE_PROGRAMS: Dict[str, str] = {
    "Simple Loop": """#include <stdio.h>

int main() {
    int sum = 0;
    for (int i = 0; i < 1000; i++) {
        sum += i;
    }
    printf("Sum: %d\\n", sum);
    return 0;
}
""",
    "Matrix Multiply": """#include <stdio.h>

#define N 10

int main() {
    int a[N][N], b[N][N], c[N][N];

    for (int i = 0; i < N; i++) {
        for (int j = 0; j < N; j++) {
            a[i][j] = i + j;
            b[i][j] = i - j;
            c[i][j] = 0;
        }
    }

    for (int i = 0; i < N; i++) {
        for (int j = 0; j < N; j++) {
            for (int k = 0; k < N; k++) {
                c[i][j] += a[i][k] * b[k][j];
            }
        }
    }

    printf("Result: %d\\n", c[N-1][N-1]);
    return 0;
}
""",
    "Fibonacci": """#include <stdio.h>

int fibonacci(int n) {
    if (n <= 1) return n;
    return fibonacci(n - 1) + fibonacci(n - 2);
}

int main() {
    int n = 20;
    int result = fibonacci(n);
    printf("Fibonacci(%d) = %d\\n", n, result);
    return 0;
}
""",
}


def sample_filename(name: str) -> str:
    return name.lower().replace(" ", "_") + ".c"


def write_samples(out_dir: Path) -> List[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, code in EXAMPLE_PROGRAMS.items():
        path = out_dir / sample_filename(name)
        path.write_text(code, encoding="utf-8")
        paths.append(path)
    return paths
