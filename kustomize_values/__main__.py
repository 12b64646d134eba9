"""Run the kustomize-values command line tool with `python -m kustomize_values`."""

from kustomize_values.tool.kustomize_values import main

if __name__ == "__main__":
    main()
